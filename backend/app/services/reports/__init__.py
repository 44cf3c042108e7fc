"""Emission summaries and hotspot ranking."""

from .summary import EmissionsSummary, Hotspot, compute_hotspots, compute_summary

__all__ = ["EmissionsSummary", "Hotspot", "compute_hotspots", "compute_summary"]
