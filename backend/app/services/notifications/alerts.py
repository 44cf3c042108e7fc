"""
High-emission alerts over email (SMTP) and SMS (Twilio REST API).

Alerts are fire-and-forget: `AlertDispatcher.submit` schedules delivery on
the running event loop and returns immediately. Each channel is attempted
independently; failures are logged and dropped so they can never block or
fail the request that triggered them.

Environment:
- SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, SMTP_SECURE, MAIL_FROM
- MANAGER_MAP (JSON department -> email), ALERT_DEFAULT_TO
- TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM
- MANAGER_PHONE_MAP (JSON department -> phone), SMS_DEFAULT_TO
- REPORT_ORG_NAME
"""
import asyncio
import json
import os
import re
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Set

import httpx

from app.core.logging import get_logger
from app.core.metrics import record_alert

logger = get_logger(__name__)

E164_PATTERN = re.compile(r"^\+\d{7,15}$")
TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


@dataclass(frozen=True)
class HighEmissionAlert:
    department: str
    scope: int
    value: float
    timestamp: datetime


def _org_name() -> str:
    return os.getenv("REPORT_ORG_NAME", "Your Organization")


def _lookup(map_variable: str, default_variable: str, department: str) -> Optional[str]:
    try:
        mapping = json.loads(os.getenv(map_variable) or "{}")
    except json.JSONDecodeError:
        logger.warning("alert_recipient_map_invalid", variable=map_variable)
        mapping = {}
    if isinstance(mapping, dict) and department and mapping.get(department):
        return str(mapping[department]).strip()
    default = (os.getenv(default_variable) or "").strip()
    return default or None


def get_manager_email(department: str) -> Optional[str]:
    return _lookup("MANAGER_MAP", "ALERT_DEFAULT_TO", department)


def get_manager_phone(department: str) -> Optional[str]:
    return _lookup("MANAGER_PHONE_MAP", "SMS_DEFAULT_TO", department)


class EmailSender:
    """SMTP delivery; blocking smtplib calls run in a worker thread."""

    channel = "email"

    def __init__(self):
        self.host = os.getenv("SMTP_HOST")
        self.port = int(os.getenv("SMTP_PORT") or 587)
        self.user = os.getenv("SMTP_USER")
        self.password = os.getenv("SMTP_PASS")
        self.secure = (os.getenv("SMTP_SECURE") or "").lower() == "true"
        self.sender = os.getenv("MAIL_FROM") or self.user or "alerts@localhost"

    @property
    def configured(self) -> bool:
        return bool(self.host and os.getenv("SMTP_PORT"))

    def build_message(self, alert: HighEmissionAlert, to: str) -> MIMEMultipart:
        org = _org_name()
        when = alert.timestamp.isoformat()
        msg = MIMEMultipart("alternative")
        msg["Subject"] = (
            f"High Emission Alert ({org}): {alert.department} exceeded "
            f"{alert.value:.6f} kg CO₂e"
        )
        msg["From"] = self.sender
        msg["To"] = to

        text = (
            "High Emission Alert\n\n"
            f"Organization: {org}\n"
            f"Department: {alert.department}\n"
            f"Scope: {alert.scope}\n"
            f"Emission: {alert.value:.6f} kg CO2e\n"
            f"Timestamp: {when}\n\n"
            "This is an automated alert."
        )
        html = (
            '<div style="font-family: Arial, sans-serif; max-width: 600px;">'
            '<h2 style="color:#b00020;">High Emission Alert</h2>'
            "<p>An emission reading exceeded the defined threshold.</p>"
            "<table>"
            f"<tr><td>Organization</td><td><b>{org}</b></td></tr>"
            f"<tr><td>Department</td><td><b>{alert.department}</b></td></tr>"
            f"<tr><td>Scope</td><td>{alert.scope}</td></tr>"
            f'<tr><td>Emission</td><td style="color:#b00020;">{alert.value:.6f} kg CO₂e</td></tr>'
            f"<tr><td>Timestamp</td><td>{when}</td></tr>"
            "</table>"
            "<p>This is an automated alert. Please investigate the source and take corrective actions.</p>"
            "</div>"
        )
        msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))
        return msg

    def _send_blocking(self, msg: MIMEMultipart, to: str) -> None:
        if self.secure:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=30)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=30)
        try:
            if not self.secure:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.sender, [to], msg.as_string())
        finally:
            server.quit()

    async def send(self, alert: HighEmissionAlert) -> None:
        to = get_manager_email(alert.department)
        if not to or not self.configured:
            record_alert("email", "skipped")
            logger.warning(
                "alert_email_skipped",
                department=alert.department,
                recipient_resolved=bool(to),
                smtp_configured=self.configured,
            )
            return
        msg = self.build_message(alert, to)
        await asyncio.to_thread(self._send_blocking, msg, to)
        record_alert("email", "sent")
        logger.info("alert_email_sent", department=alert.department, to=to)


class SmsSender:
    """Twilio Messages API over httpx."""

    channel = "sms"

    def __init__(self, timeout_seconds: float = 10.0):
        self.account_sid = (os.getenv("TWILIO_ACCOUNT_SID") or "").strip()
        self.auth_token = (os.getenv("TWILIO_AUTH_TOKEN") or "").strip()
        self.sender = (os.getenv("TWILIO_FROM") or "").strip()
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    def build_body(self, alert: HighEmissionAlert) -> str:
        return (
            f"High Emission Alert ({_org_name()}):\n"
            f"Dept: {alert.department}\n"
            f"Scope: {alert.scope}\n"
            f"CO2: {alert.value:.6f} kg\n"
            f"Time: {alert.timestamp.isoformat()}"
        )

    async def send(self, alert: HighEmissionAlert) -> None:
        to = get_manager_phone(alert.department)
        if not to or not self.configured:
            record_alert("sms", "skipped")
            logger.warning(
                "alert_sms_skipped",
                department=alert.department,
                recipient_resolved=bool(to),
                twilio_configured=self.configured,
            )
            return
        if not E164_PATTERN.match(self.sender) or not E164_PATTERN.match(to):
            record_alert("sms", "skipped")
            logger.warning(
                "alert_sms_invalid_number",
                from_valid=bool(E164_PATTERN.match(self.sender)),
                to_valid=bool(E164_PATTERN.match(to)),
            )
            return

        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(
                url,
                auth=(self.account_sid, self.auth_token),
                data={"Body": self.build_body(alert), "From": self.sender, "To": to},
            )
        response.raise_for_status()
        record_alert("sms", "sent")
        logger.info(
            "alert_sms_sent",
            department=alert.department,
            to=to,
            sid=response.json().get("sid"),
        )


class AlertDispatcher:
    """Schedules alert delivery without awaiting it."""

    def __init__(self, channels=None):
        self.channels = channels if channels is not None else [EmailSender(), SmsSender()]
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, alert: HighEmissionAlert) -> Optional[asyncio.Task]:
        """Schedule delivery on the running loop; returns the task (None without a loop)."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("alert_dropped_no_event_loop", department=alert.department)
            return None
        task = loop.create_task(self.deliver(alert))
        # The loop keeps only weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def deliver(self, alert: HighEmissionAlert) -> None:
        for channel in self.channels:
            name = getattr(channel, "channel", type(channel).__name__)
            try:
                await channel.send(alert)
            except Exception as exc:
                record_alert(name, "failed")
                logger.warning(
                    "alert_delivery_failed",
                    channel=name,
                    department=alert.department,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

    @property
    def pending(self) -> int:
        return len(self._tasks)


_alert_dispatcher: Optional[AlertDispatcher] = None


def get_alert_dispatcher() -> AlertDispatcher:
    global _alert_dispatcher
    if _alert_dispatcher is None:
        _alert_dispatcher = AlertDispatcher()
    return _alert_dispatcher


def set_alert_dispatcher(dispatcher: Optional[AlertDispatcher]) -> None:
    global _alert_dispatcher
    _alert_dispatcher = dispatcher
