# storefront/cli.py
import click

from .errors import ValidationError
from .extensions import db
from .model import User
from .services.coupon_service import create_coupon_from_payload


@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--name", required=True)
def create_admin(email, name):
    email = email.strip().lower()
    u = User.query.filter_by(email=email).first()
    if u and u.role == "admin":
        click.echo("Admin already exists"); return
    if u:
        u.role = "admin"
    else:
        u = User(email=email, name=name, role="admin")
        db.session.add(u)
    db.session.commit()
    click.echo(f"Admin ready: {u.id} {u.email}")


@click.command("create-coupon")
@click.option("--code", required=True)
@click.option("--type", "discount_type", type=click.Choice(["percentage", "fixed"]), default="percentage")
@click.option("--value", "discount_value", type=float, required=True)
@click.option("--min-purchase", type=float, default=0.0)
@click.option("--max-uses", type=int, default=0, help="0 means unlimited")
@click.option("--valid-until", default=None, help="ISO8601; defaults to 30 days from now")
def create_coupon(code, discount_type, discount_value, min_purchase, max_uses, valid_until):
    try:
        c = create_coupon_from_payload({
            "code": code,
            "discount_type": discount_type,
            "discount_value": discount_value,
            "min_purchase": min_purchase,
            "max_uses": max_uses,
            "valid_until": valid_until,
        })
    except ValidationError as e:
        db.session.rollback()
        raise click.ClickException(e.message)
    click.echo(f"Coupon created: {c.id} {c.code}")


def register_cli(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(create_coupon)
