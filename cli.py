# cli.py
# Usage: flask --app app affiliates <command>
import json

import click
from flask import current_app
from flask.cli import AppGroup

from extensions import db
from commission.audit import PostbackAuditLog
from commission.errors import PostbackError
from commission.ledger import CommissionLedger
from commission.registry import PartnerRegistry
from commission.resolver import AffiliateResolver

affiliates_cli = AppGroup("affiliates", help="Partner houses, affiliates and the postback ledger.")


def _registry():
    return PartnerRegistry(db.session, placeholder=current_app.config.get("AFFILIATE_LINK_PLACEHOLDER", "VALUE"))


@affiliates_cli.command("init-db")
def init_db():
    """Create all tables (use `flask db upgrade` on real deployments)."""
    db.create_all()
    click.echo("Tables created.")


@affiliates_cli.command("create-house")
@click.option("--name", required=True)
@click.option("--base-url", required=True, help="Redirect template containing the VALUE placeholder.")
@click.option("--model", "commission_model", required=True, type=click.Choice(["CPA", "RevShare", "Hybrid"]))
@click.option("--value", "commission_value", help="Flat value for CPA / percentage for RevShare.")
@click.option("--cpa-value", help="Hybrid only.")
@click.option("--revshare-value", help="Hybrid only.")
@click.option("--event", "events", multiple=True, help="Enabled event kind; repeat for several.")
@click.option("--map", "mappings", multiple=True, help="canonical=house_param, e.g. subid=aff_sub.")
@click.option("--identifier", help="Slug used in postback URLs; generated when omitted.")
@click.option("--description")
def create_house(name, base_url, commission_model, commission_value, cpa_value, revshare_value,
                 events, mappings, identifier, description):
    parameter_mapping = {}
    for item in mappings:
        if "=" not in item:
            raise click.BadParameter(f"{item!r} is not canonical=house_param", param_hint="--map")
        canonical, house_param = item.split("=", 1)
        parameter_mapping[canonical.strip()] = house_param.strip()

    try:
        house = _registry().register_house(
            name=name,
            base_url=base_url,
            commission_model=commission_model,
            commission_value=commission_value,
            cpa_value=cpa_value,
            revshare_value=revshare_value,
            enabled_events=events,
            parameter_mapping=parameter_mapping,
            identifier=identifier,
            description=description,
        )
    except PostbackError as e:
        raise click.ClickException(str(e))

    click.echo(json.dumps(house.to_dict(include_token=True), indent=2))
    click.echo(f"Postback URL: /postback/{house.identifier}/<event>/{house.security_token}?subid=<tracking code>")


@affiliates_cli.command("show-house")
@click.argument("identifier")
def show_house(identifier):
    house = _registry().get_house(identifier)
    if house is None:
        raise click.ClickException(f"House {identifier!r} not found")
    click.echo(json.dumps(house.to_dict(include_token=True), indent=2))


@affiliates_cli.command("deactivate-house")
@click.argument("identifier")
def deactivate_house(identifier):
    if not _registry().deactivate_house(identifier):
        raise click.ClickException(f"House {identifier!r} not found")
    click.echo(f"House {identifier} deactivated.")


@affiliates_cli.command("create-affiliate")
@click.argument("username")
@click.option("--email")
@click.option("--full-name")
def create_affiliate(username, email, full_name):
    try:
        affiliate = AffiliateResolver(db.session).register_affiliate(username, email=email, full_name=full_name)
    except PostbackError as e:
        raise click.ClickException(str(e))
    click.echo(f"Affiliate {affiliate.username} created (id={affiliate.id}).")


@affiliates_cli.command("create-link")
@click.argument("identifier")
@click.argument("username")
def create_link(identifier, username):
    try:
        link = _registry().create_link(identifier, username)
    except PostbackError as e:
        raise click.ClickException(str(e))
    click.echo(link.generated_url)


@affiliates_cli.command("audit-log")
@click.option("--status")
@click.option("--house")
@click.option("--subid")
@click.option("--limit", default=20, show_default=True)
def audit_log(status, house, subid, limit):
    for entry in PostbackAuditLog(db.session).search(status=status, house_slug=house, subid=subid, limit=limit):
        click.echo(json.dumps(entry.to_dict()))


@affiliates_cli.command("summary")
@click.argument("affiliate_id", type=int)
def summary(affiliate_id):
    stats = CommissionLedger(db.session).affiliate_summary(affiliate_id)
    click.echo(json.dumps(stats, indent=2, default=str))
