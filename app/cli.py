import json
import click
from flask.cli import with_appcontext
from sqlalchemy import func
from app.extensions import db
from app.models import User
from app.services import tokens


def _get_user(email: str) -> User:
    user = db.session.query(User).filter(func.lower(User.email) == email.strip().lower()).one_or_none()
    if not user:
        raise click.ClickException("User not found")
    return user


@click.group()
def users():
    """Account management."""

@users.command("create")
@click.option("--email", required=True)
@with_appcontext
def users_create(email):
    email = email.strip().lower()
    if db.session.query(User).filter(func.lower(User.email) == email).count():
        raise click.ClickException("User already exists")

    user = User(email=email, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"User created id={user.id} email={user.email}")

@users.command("token")
@click.option("--email", required=True)
@with_appcontext
def users_token(email):
    """Issue a bearer token for the owner API."""
    user = _get_user(email)
    click.echo(tokens.generate_api_token(user.id))


@click.group()
def billing():
    """Billing operations (Stripe sync and cleanup)."""

@billing.command("sync")
@click.option("--customer-id", required=True, help="Stripe customer id (cus_...)")
@with_appcontext
def billing_sync(customer_id):
    """Reconcile one customer from Stripe right now, bypassing the queue."""
    from app.billing.sync import get_reconciler
    try:
        record = get_reconciler().reconcile(customer_id)
    except RuntimeError as exc:
        raise click.ClickException(str(exc))
    click.echo(json.dumps(record.to_dict(), sort_keys=True))

@billing.command("purge")
@click.option("--email", required=True)
@click.confirmation_option(prompt="Cancel all subscriptions and delete the Stripe customer?")
@with_appcontext
def billing_purge(email):
    """Billing half of account deletion: cancel now, delete customer, soft-delete rows."""
    from app.billing.accounts import purge_customer
    user = _get_user(email)
    summary = purge_customer(user.id)
    click.echo(json.dumps(summary, sort_keys=True))
    if summary["failed_customers"]:
        click.echo("Stripe cleanup failed for some customers; see logs.", err=True)


def register_cli(app):
    app.cli.add_command(users)
    app.cli.add_command(billing)
