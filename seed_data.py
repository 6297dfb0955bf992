#!/usr/bin/env python3

from datetime import datetime, timedelta
from decimal import Decimal

from ussd_ticketing.database import SessionLocal, init_db
from ussd_ticketing.models import User, Operator, Bus, Booking, Transaction
from ussd_ticketing.ussd.auth import hash_pin

def create_seed_data():
    init_db()
    db = SessionLocal()

    try:
        print("🚀 Creating seed data for Bus Ticketing USSD...")

        # Clear existing data (in reverse dependency order)
        print("Clearing existing data...")
        db.query(Transaction).delete()
        db.query(Booking).delete()
        db.query(Bus).delete()
        db.query(Operator).delete()
        db.query(User).delete()

        # 1. Create Operators
        print("Creating operators...")
        operators = [
            Operator(name="Nile Express", pin_hash=hash_pin("1234")),
            Operator(name="Juba Coaches", pin_hash=hash_pin("5678")),
        ]
        db.add_all(operators)
        db.flush()

        # 2. Create Buses
        print("Creating buses...")
        tomorrow = (datetime.now() + timedelta(days=1)).replace(minute=0, second=0, microsecond=0)
        buses = [
            ("Juba - Nimule", operators[0], tomorrow.replace(hour=7), 40, Decimal("15000.00")),
            ("Juba - Yei", operators[0], tomorrow.replace(hour=9), 30, Decimal("12000.00")),
            ("Juba - Torit", operators[1], tomorrow.replace(hour=8), 35, Decimal("10000.00")),
            ("Juba - Bor", operators[1], tomorrow + timedelta(days=2, hours=6), 45, Decimal("18000.00")),
        ]
        db.add_all([
            Bus(
                route=route,
                operator_id=operator.id,
                operator=operator.name,
                departure_time=departure_time,
                total_seats=seats,
                available_seats=seats,
                price=price,
            )
            for route, operator, departure_time, seats, price in buses
        ])

        db.commit()
        print("✅ Seed data created successfully!")
        print("Operator PINs: Nile Express=1234, Juba Coaches=5678")

    except Exception as e:
        print(f"❌ Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
