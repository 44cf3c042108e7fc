"""
Seed script to populate the telemetry store with sample readings for development.
Generates 80 readings across four departments plus 10 scope-3 "Melting" readings
per batch, each batch ending at the current time.
"""
import argparse
import random
import sys
from pathlib import Path

# Add backend directory to path to import app modules
backend_path = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_path))

from app.core.database import supabase_configured
from app.services.telemetry.sample_data import generate_sample_records
from app.services.telemetry.store import TelemetryStoreError, get_telemetry_store


def main():
    """Main function to seed the telemetry store."""
    parser = argparse.ArgumentParser(description="Seed sample emission telemetry")
    parser.add_argument(
        "-b", "--batches", type=int, default=1,
        help="Number of sample batches to insert (default: 1)",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Random seed for reproducible readings",
    )
    args = parser.parse_args()

    print("Starting telemetry seeding...")
    print("-" * 50)

    if not supabase_configured():
        print("[ERROR] Supabase is not configured. Set SUPABASE_URL and SUPABASE_SERVICE_KEY in .env.")
        sys.exit(1)

    store = get_telemetry_store()
    rng = random.Random(args.seed)
    inserted = 0
    for batch in range(max(1, args.batches)):
        try:
            inserted += store.insert_many(generate_sample_records(rng=rng))
        except TelemetryStoreError as e:
            print(f"[ERROR] Error inserting batch {batch + 1}: {e}")
            sys.exit(1)

    print("\n" + "-" * 50)
    print("[OK] Telemetry seeding completed successfully!")
    print(f"  - Readings: {inserted}")


if __name__ == "__main__":
    main()
