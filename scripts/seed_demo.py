#!/usr/bin/env python3
"""
Demo Environment Seeder for FireLog

Creates the tables, a small province -> county -> fire department hierarchy,
an admin account and a handful of sample meldunki so the app can be explored
right after setup.

Run manually:
    FIRELOG_DATABASE_URL=postgresql:///firelog_db python3 scripts/seed_demo.py
    python3 scripts/seed_demo.py --email admin@osp.pl --password 'Haslo123!' --samples 10

Safe to run repeatedly: existing reference rows and the admin account are
reused; sample meldunki are added on every run unless --samples 0.

Credentials (defaults):
    - admin@firelog.local / Demo123!@# (admin role)
"""

import argparse
import logging
import os
import random
import sys
from datetime import date, timedelta

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "backend"))

from database import Base, SessionLocal, engine  # noqa: E402
from auth_client import AuthApiError, AuthClient  # noqa: E402
from models import AuthUser, County, FireDepartment, Province, ROLE_ADMIN  # noqa: E402
from services.meldunki_service import MeldunkiService  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
log = logging.getLogger("seed_demo")

# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

HIERARCHY = {
    "mazowieckie": {
        "warszawski zachodni": ["OSP Izabelin", "OSP Leszno", "OSP Stare Babice"],
        "piaseczyński": ["OSP Piaseczno", "OSP Konstancin-Jeziorna"],
    },
    "małopolskie": {
        "krakowski": ["OSP Zabierzów", "OSP Skawina"],
    },
    "wielkopolskie": {
        "poznański": ["OSP Kórnik", "OSP Swarzędz"],
    },
}

DEMO_DEPARTMENT = "OSP Izabelin"
DEMO_VERIFICATION_CODE = "IZA-2024"

SAMPLE_INCIDENTS = [
    ("Pożar budynku mieszkalnego", "Pożar poddasza w budynku jednorodzinnym, ewakuowano mieszkańców.",
     "ul. Lipkowska 12, Izabelin", "GBA 2.5/16, SLRt"),
    ("Pożar traw", "Pożar suchych traw na nieużytkach przy drodze wojewódzkiej, około 2 ha.",
     "DW580, Izabelin", "GBA 2.5/16"),
    ("Wypadek drogowy", "Kolizja dwóch samochodów osobowych, zabezpieczenie miejsca zdarzenia.",
     "ul. Sierakowska, Laski", "SLRt"),
    ("Powalone drzewo", "Drzewo powalone przez wichurę blokuje jezdnię, usunięto piłą spalinową.",
     "ul. Mościckiego, Truskaw", "GBA 2.5/16"),
    ("Pomoc medyczna", "Osoba poszkodowana zasłabła w lesie, udzielono kwalifikowanej pierwszej pomocy do przyjazdu karetki.",
     "Puszcza Kampinoska, szlak czerwony", "SLRt"),
    ("Plama oleju", "Plama substancji ropopochodnej na jezdni po awarii pojazdu ciężarowego.",
     "ul. 3 Maja, Izabelin C", "SLRt"),
]

COMMANDERS = ["Jan Kowalski", "Piotr Nowak", "Tomasz Wiśniewski"]
DRIVERS = ["Marek Wójcik", "Adam Kamiński", "Paweł Lewandowski"]


def seed_hierarchy(db):
    created = 0
    for province_name, counties in HIERARCHY.items():
        province = db.query(Province).filter(Province.name == province_name).first()
        if not province:
            province = Province(name=province_name)
            db.add(province)
            db.flush()
            created += 1

        for county_name, departments in counties.items():
            county = db.query(County).filter(
                County.name == county_name, County.province_id == province.id
            ).first()
            if not county:
                county = County(name=county_name, province_id=province.id)
                db.add(county)
                db.flush()
                created += 1

            for department_name in departments:
                exists = db.query(FireDepartment).filter(FireDepartment.name == department_name).first()
                if not exists:
                    code = DEMO_VERIFICATION_CODE if department_name == DEMO_DEPARTMENT else None
                    db.add(FireDepartment(name=department_name, county_id=county.id, verification_code=code))
                    created += 1

    db.commit()
    log.info(f"Reference hierarchy ready ({created} rows created)")


def seed_admin(db, email, password, department_name):
    department = db.query(FireDepartment).filter(FireDepartment.name == department_name).first()
    if not department:
        raise SystemExit(f"Fire department not found: {department_name}")

    existing = db.query(AuthUser).filter(AuthUser.email == email.lower()).first()
    if existing:
        log.info(f"Admin account already exists: {email}")
        existing.profile.role = ROLE_ADMIN
        existing.profile.fire_department_id = department.id
        db.commit()
        return existing

    try:
        auth = AuthClient(db).sign_up(email, password, {
            "fire_department_id": department.id,
            "first_name": "Demo",
            "last_name": "Administrator",
            "role": ROLE_ADMIN,
        })
    except AuthApiError as e:
        raise SystemExit(f"Could not create admin: {e.message}")

    log.info(f"Admin account created: {email} in {department.name}")
    return auth.user


def seed_meldunki(db, user, count):
    service = MeldunkiService(db)
    today = date.today()
    for i in range(count):
        name, description, location, equipment = SAMPLE_INCIDENTS[i % len(SAMPLE_INCIDENTS)]
        service.create_meldunek(user.id, {
            "incident_name": name,
            "description": description,
            "incident_date": (today - timedelta(days=random.randint(0, 120))).isoformat(),
            "location_address": location,
            "forces_and_resources": equipment,
            "commander": random.choice(COMMANDERS),
            "driver": random.choice(DRIVERS),
        })
    log.info(f"Created {count} sample meldunki")


def main():
    parser = argparse.ArgumentParser(description="Seed a FireLog database with demo data")
    parser.add_argument("--email", default="admin@firelog.local", help="Admin account email")
    parser.add_argument("--password", default="Demo123!@#", help="Admin account password")
    parser.add_argument("--department", default=DEMO_DEPARTMENT, help="Fire department of the admin")
    parser.add_argument("--samples", type=int, default=len(SAMPLE_INCIDENTS), help="Sample meldunki to create")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        seed_hierarchy(db)
        admin = seed_admin(db, args.email, args.password, args.department)
        if args.samples > 0:
            seed_meldunki(db, admin, args.samples)
    finally:
        db.close()

    log.info("Demo seed complete")
    log.info(f"  Login: {args.email}")
    log.info(f"  Department verification code ({DEMO_DEPARTMENT}): {DEMO_VERIFICATION_CODE}")


if __name__ == "__main__":
    main()
