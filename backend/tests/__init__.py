import os

# Before any backend module builds its engine, signing key or SMTP settings
os.environ.setdefault("FIRELOG_DATABASE_URL", "sqlite://")
os.environ.setdefault("FIRELOG_JWT_SECRET", "firelog-test-secret-0123456789abcdef")
os.environ["SMTP_PASSWORD"] = ""
