"""
Seed roles, an admin user, equipment and projects for local development.
Safe to run repeatedly: existing rows (matched by name/code) are left alone.
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Load environment variables first
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError as e:
    print(f"WARNING: Could not load .env file: {e}")

# Check database type before importing
database_url = os.getenv("DATABASE_URL", "sqlite:///./var/dev.db")

if database_url.startswith("postgresql"):
    try:
        import psycopg2  # noqa: F401
    except ImportError:
        print("ERROR: PostgreSQL database detected but psycopg2 is not installed.")
        sys.exit(1)
elif database_url.startswith("sqlite:///./"):
    os.makedirs("var", exist_ok=True)

from equiphub.db import Base, SessionLocal, engine
from equiphub.auth.security import get_password_hash
from equiphub.models.models import Equipment, EquipmentType, Project, ProjectMember, Role, User


ROLES = [
    {"name": "admin", "description": "Full access", "permissions": {}},
    {
        "name": "project_manager",
        "description": "Assigns equipment to the projects they manage",
        "permissions": {"equipment:access": True, "equipment:read": True, "equipment:assign": True},
    },
    {
        "name": "technician",
        "description": "Views equipment and assignments",
        "permissions": {"equipment:access": True, "equipment:read": True},
    },
]

EQUIPMENT_TYPES = ["Heavy machinery", "Generator", "Tooling"]

EQUIPMENT = [
    {"name": "Excavator CAT 320", "code": "EXC-001", "type": "Heavy machinery", "location": "Yard A"},
    {"name": "Backhoe JCB 3CX", "code": "BHL-002", "type": "Heavy machinery", "location": "Yard A"},
    {"name": "Generator 60kVA", "code": "GEN-003", "type": "Generator", "location": "Warehouse"},
    {"name": "Concrete mixer", "code": "MIX-004", "type": "Tooling", "location": "Warehouse", "status": "maintenance"},
]

PROJECTS = [
    {"name": "North Bridge Rehabilitation", "location": "North district"},
    {"name": "Riverside Housing Phase 2", "location": "Riverside"},
]


def _get_or_create(db, model, defaults=None, **lookup):
    obj = db.query(model).filter_by(**lookup).first()
    if obj:
        return obj, False
    obj = model(**lookup, **(defaults or {}))
    db.add(obj)
    db.flush()
    return obj, True


def seed_demo_data():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        roles = {}
        for spec in ROLES:
            role, created = _get_or_create(
                db, Role, name=spec["name"],
                defaults={"description": spec["description"], "permissions": spec["permissions"]},
            )
            roles[role.name] = role
            print(f"{'Created' if created else 'Found'} role '{role.name}'")

        admin, created = _get_or_create(
            db, User, username="admin",
            defaults={
                "email": "admin@example.com",
                "name": "Administrator",
                "password_hash": get_password_hash(os.getenv("SEED_ADMIN_PASSWORD", "admin123")),
            },
        )
        if roles["admin"] not in admin.roles:
            admin.roles.append(roles["admin"])
        print(f"{'Created' if created else 'Found'} user 'admin'")

        types = {}
        for name in EQUIPMENT_TYPES:
            types[name], _ = _get_or_create(db, EquipmentType, name=name)

        for spec in EQUIPMENT:
            _, created = _get_or_create(
                db, Equipment, code=spec["code"],
                defaults={
                    "name": spec["name"],
                    "type_id": types[spec["type"]].id,
                    "location": spec["location"],
                    "status": spec.get("status", "operational"),
                },
            )
            print(f"{'Created' if created else 'Found'} equipment {spec['code']}")

        for spec in PROJECTS:
            project, created = _get_or_create(
                db, Project, name=spec["name"],
                defaults={"location": spec["location"], "created_by": admin.id},
            )
            _get_or_create(db, ProjectMember, project_id=project.id, user_id=admin.id, defaults={"role": "manager"})
            print(f"{'Created' if created else 'Found'} project '{project.name}'")

        db.commit()
        print("Demo data seeded")
    except Exception as e:
        db.rollback()
        print(f"ERROR: seeding failed: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_demo_data()
