"""CLI for scidraft using Typer."""

from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from .config import get_config
from .utils import setup_logger

app = typer.Typer(
    name="scidraft",
    help="SciDraft API server and maintenance commands"
)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
    reload: bool = typer.Option(False, help="Reload on code changes (development)"),
    workers: int = typer.Option(1, help="Number of worker processes")
):
    """
    Run the HTTP API with uvicorn.

    Example: scidraft serve --port 8000 --reload
    """
    import uvicorn

    setup_logger()
    logger.info(f"Starting SciDraft API on {host}:{port}")

    uvicorn.run(
        "scidraft.api:app",
        host=host,
        port=port,
        reload=reload,
        workers=1 if reload else workers,
    )


@app.command()
def init_db():
    """
    Create all tables directly (development only; use alembic in production).

    Example: scidraft init-db
    """
    from .database import init_db as create_tables, DatabaseConfigError

    setup_logger()

    try:
        create_tables()
    except DatabaseConfigError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    logger.info("✓ Database tables created")


@app.command()
def check_db():
    """
    Verify the database connection.

    Example: scidraft check-db
    """
    from .database import check_db_connection

    setup_logger()

    try:
        check_db_connection()
    except Exception as e:
        logger.error(f"Database check failed: {e}")
        raise typer.Exit(1)

    logger.info("✓ Database reachable")


@app.command()
def create_admin(
    email: str = typer.Option(..., help="Admin email"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    role: str = typer.Option("admin", help="moderator, admin or super_admin"),
    name: Optional[str] = typer.Option(None, help="Display name")
):
    """
    Create a back-office account, or reset an existing account's password and role.

    Example: scidraft create-admin --email admin@scidraft.com --role super_admin
    """
    from .admin_auth import AdminRole, hash_password, is_valid_email, sanitize_email
    from .database import get_db_session, Admin

    setup_logger()

    email = sanitize_email(email)
    if not is_valid_email(email):
        logger.error(f"Invalid email: {email}")
        raise typer.Exit(1)

    parsed_role = AdminRole.from_name(role)
    if parsed_role is None:
        logger.error(f"Unknown role: {role} (expected moderator, admin or super_admin)")
        raise typer.Exit(1)

    if len(password) < 8:
        logger.error("Password must be at least 8 characters")
        raise typer.Exit(1)

    with get_db_session() as db:
        admin = db.query(Admin).filter(Admin.email == email).first()
        if admin is None:
            admin = Admin(email=email)
            db.add(admin)
            action = "Created"
        else:
            action = "Updated"

        admin.role = parsed_role.label
        admin.password_hash = hash_password(password)
        if name:
            admin.name = name

    logger.info(f"✓ {action} {parsed_role.label} account {email}")


@app.command()
def config():
    """
    Show the effective configuration (secrets masked).

    Example: scidraft config
    """
    setup_logger()
    settings = get_config()

    def mask(value: Optional[str]) -> str:
        return "set" if value else "missing"

    logger.info("=" * 60)
    logger.info("SCIDRAFT CONFIGURATION")
    logger.info("=" * 60)
    logger.info(f"LLM model: {settings.sd_llm_model} (OPENAI_API_KEY {mask(settings.openai_api_key)})")
    logger.info(f"Supabase URL: {settings.supabase_url or 'missing'}")
    logger.info(f"Service role key: {mask(settings.supabase_service_role_key)}")
    logger.info(f"M-Pesa environment: {settings.mpesa_environment}")
    missing = settings.missing_mpesa_settings()
    logger.info(f"M-Pesa settings missing: {', '.join(missing) if missing else 'none'}")
    logger.info(f"CORS origins: {', '.join(settings.cors_origins)}")
    logger.info(f"Log file: {Path(settings.sd_log_file) if settings.sd_log_file else 'console only'}")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
