"""User management CLI commands."""

import asyncio
import uuid

import typer

from ballot_api.core.config import get_settings
from ballot_api.core.database import dispose_engine, init_engine, session_scope
from ballot_api.schemas.auth import RegisterRequest
from ballot_api.services import auth_service
from ballot_api.services.auth_service import DuplicateUserError, UserNotFoundError

user_app = typer.Typer()


@user_app.command("create")
def create_user(
    email: str = typer.Option(..., prompt=True, help="Email address"),
    first_name: str = typer.Option(..., prompt=True, help="First name"),
    last_name: str = typer.Option(..., prompt=True, help="Last name"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True, help="Password"),
    role: str = typer.Option("voter", prompt=True, help="User role (voter/admin)"),
    if_not_exists: bool = typer.Option(
        False,
        "--if-not-exists",
        help="Exit successfully if user already exists (idempotent mode)",
    ),
) -> None:
    """Create a verified user, typically an administrator."""
    request = RegisterRequest(
        email=email,
        password=password,
        first_name=first_name,
        last_name=last_name,
        role=role,
    )
    asyncio.run(_create_user(request, if_not_exists=if_not_exists))


async def _create_user(request: RegisterRequest, *, if_not_exists: bool = False) -> None:
    """Async implementation of user creation."""
    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            user = await auth_service.register_user(session, request)
            await auth_service.verify_user(session, user.id)
            typer.echo(f"User '{user.email}' created with role '{user.role}'")
    except DuplicateUserError as e:
        if if_not_exists:
            typer.echo(f"User '{request.email}' already exists, skipping (--if-not-exists)")
            return
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    finally:
        await dispose_engine()


@user_app.command("list")
def list_users(
    page: int = typer.Option(1, "--page", min=1, help="Page number"),
    page_size: int = typer.Option(50, "--page-size", min=1, max=500, help="Users per page"),
) -> None:
    """List users with their verification and lockout state."""
    asyncio.run(_list_users(page, page_size))


async def _list_users(page: int, page_size: int) -> None:
    """Async implementation of user listing."""
    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            users, total = await auth_service.list_users(session, page, page_size)
            typer.echo(f"{'Email':<32} {'Role':<8} {'Active':<8} {'Verified':<9} {'Failed':<7} {'Locked until'}")
            typer.echo("-" * 90)
            for user in users:
                locked = user.locked_until.isoformat(timespec="seconds") if user.locked_until else "-"
                typer.echo(
                    f"{user.email:<32} {user.role:<8} {user.is_active!s:<8} {user.is_verified!s:<9} "
                    f"{user.failed_login_attempts:<7} {locked}"
                )
            typer.echo(f"\nTotal: {total}")
    finally:
        await dispose_engine()


@user_app.command("unlock")
def unlock_user(
    user_id: str = typer.Argument(..., help="User UUID"),
) -> None:
    """Clear a user's failed-login counter and lockout."""
    try:
        parsed = uuid.UUID(user_id)
    except ValueError as e:
        typer.echo(f"Error: '{user_id}' is not a valid UUID", err=True)
        raise typer.Exit(code=1) from e
    asyncio.run(_unlock_user(parsed))


async def _unlock_user(user_id: uuid.UUID) -> None:
    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with session_scope() as session:
            user = await auth_service.unlock_user(session, user_id)
            typer.echo(f"User '{user.email}' unlocked")
    except UserNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    finally:
        await dispose_engine()
