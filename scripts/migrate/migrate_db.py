#!/usr/bin/env python3
"""Crea el esquema y el admin por defecto sin levantar la API.

Uso (desde la raiz): python -m scripts.migrate.migrate_db [--attempts 5] [--wait 3] [--no-admin]
"""
import argparse
import sys

from services.ciberzone.app.db import DATABASE_URL, SessionLocal, bootstrap_admin, describe_target, init_db


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Migracion de la base de CiberZone")
    parser.add_argument("--attempts", type=int, default=5)
    parser.add_argument("--wait", type=float, default=3.0, help="segundos base entre intentos")
    parser.add_argument("--no-admin", action="store_true", help="no crear el admin por defecto")
    args = parser.parse_args(argv)

    target = describe_target(DATABASE_URL)
    print(f"DB target host={target['host']} port={target['port']} database={target['database']}")
    if not init_db(attempts=args.attempts, wait_seconds=args.wait):
        print("Migracion fallida")
        return 1
    if not args.no_admin:
        db = SessionLocal()
        try:
            created = bootstrap_admin(db)
        finally:
            db.close()
        print("Admin creado" if created else "Admin ya existia")
    return 0


if __name__ == "__main__":
    sys.exit(main())
