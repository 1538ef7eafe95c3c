from guest_gateway.db.init_db import create_tables, ensure_builtin_roles
from guest_gateway.db.session import engine, SessionLocal

if engine is None:
    raise SystemExit("DATABASE_URL is not set")

print("Creating database tables...")
create_tables(engine)
db = SessionLocal()
try:
    added = ensure_builtin_roles(db)
finally:
    db.close()
print(f"✅ All tables created successfully! ({added} built-in role(s) seeded)")
