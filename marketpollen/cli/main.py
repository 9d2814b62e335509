#!/usr/bin/env python3
"""
MarketPollen Terminal CLI
Command-line interface for store outreach: day plans, call intake, place search.
"""

import logging
import click
from datetime import date

from marketpollen.config import config
from marketpollen.engine import crm, call_intake, day_planner, donations, lead_scout
from marketpollen.logging_config import configure_logging, log_call

logger = logging.getLogger(__name__)


def _fail(command: str, e: Exception) -> None:
    logger.error(f"{command} command failed: {e}", exc_info=True)
    click.echo(f"Error: {e}", err=True)


@click.group()
def cli():
    """MarketPollen - Bakery Store Outreach CRM"""
    configure_logging()


# =============================================================================
# STORES
# =============================================================================

@cli.group()
def stores():
    """Bakery store locations"""
    pass


@stores.command('list')
@log_call
def stores_list():
    """List all stores"""
    results = crm.list_stores()

    if not results:
        click.echo("No stores found.")
        return

    click.echo(f"\nFound {len(results)} stores:\n")
    click.echo(f"{'ID':<6} {'Name':<30} {'Address':<40}")
    click.echo("-" * 78)

    for s in results:
        click.echo(f"{s.id:<6} {s.name[:28]:<30} {s.full_address()[:40]:<40}")


# =============================================================================
# OPPORTUNITIES
# =============================================================================

@cli.group()
def opportunities():
    """Prospective businesses found by place searches"""
    pass


@opportunities.command('list')
@click.argument('store_id', type=int)
@click.option('--status', type=click.Choice(['new', 'converted', 'dismissed']), default='new',
              show_default=True, help='Filter by status')
@log_call
def opportunities_list(store_id, status):
    """List a store's opportunities"""
    try:
        results = crm.list_opportunities(store_id, status)
    except Exception as e:
        _fail('opportunities list', e)
        return

    if not results:
        click.echo(f"No {status} opportunities.")
        return

    click.echo(f"\n{len(results)} {status} opportunities:\n")
    click.echo(f"{'ID':<6} {'Name':<30} {'Address':<40}")
    click.echo("-" * 78)

    for o in results:
        click.echo(f"{o.id:<6} {o.name[:28]:<30} {o.full_address()[:40]:<40}")


@opportunities.command('convert')
@click.argument('opportunity_id', type=int)
@click.option('--name', help='Business name (defaults to the opportunity name)')
@click.option('--address', help='Override address')
@click.option('--city', help='Override city')
@click.option('--state', help='Override state')
@click.option('--zip', 'zip_code', help='Override ZIP code')
@log_call
def opportunities_convert(opportunity_id, name, address, city, state, zip_code):
    """Convert an opportunity into a tracked business"""
    overrides = {'name': name, 'address': address, 'city': city, 'state': state, 'zip_code': zip_code}
    try:
        opp, business = crm.convert_opportunity(opportunity_id, overrides, created_by='cli')
    except Exception as e:
        _fail('opportunities convert', e)
        return

    click.echo(f"✓ Converted opportunity #{opp.id} into business #{business.id}: {business.name}")


@opportunities.command('dismiss')
@click.argument('opportunity_id', type=int)
@log_call
def opportunities_dismiss(opportunity_id):
    """Dismiss an opportunity"""
    try:
        opp = crm.dismiss_opportunity(opportunity_id)
    except Exception as e:
        _fail('opportunities dismiss', e)
        return

    click.echo(f"✓ Dismissed opportunity #{opp.id}: {opp.name}")


# =============================================================================
# DAY PLAN
# =============================================================================

@cli.command('dayplan')
@click.argument('store_id', type=int)
@click.option('--date', 'date_str', default=None, help='Day to plan, YYYY-MM-DD (default: today)')
@log_call
def dayplan(store_id, date_str):
    """Follow-ups due and a visiting route for one day"""
    date_str = date_str or date.today().isoformat()
    try:
        click.echo(f"\nBuilding day plan for store #{store_id} on {date_str}...\n")
        plan = day_planner.build_day_plan(store_id, date_str)
    except Exception as e:
        _fail('dayplan', e)
        return

    click.echo(f"{'='*80}")
    click.echo(f"DAY PLAN: {plan.store_name} - {plan.date}")
    click.echo(f"{'='*80}")
    click.echo(f"Start: {plan.store_address or '(no address)'}")

    click.echo(f"\nFOLLOW-UPS ({len(plan.follow_up_tasks)})")
    click.echo("-" * 80)
    if plan.follow_up_tasks:
        for task in plan.follow_up_tasks:
            click.echo(f"[{task.method}] {task.contact_name}: {task.message}")
            if task.draft_email:
                click.echo(f"  Draft: {task.draft_email}")
    else:
        click.echo("No follow-ups due.")

    click.echo(f"\nROUTE ({len(plan.optimized_route)} stops)")
    click.echo("-" * 80)
    if plan.optimized_route:
        for i, stop in enumerate(plan.optimized_route, 1):
            click.echo(f"{i:>2}. {stop.name} - {stop.address or ''}")
    else:
        click.echo("No opportunities to visit.")
    click.echo()


# =============================================================================
# CALL INTAKE
# =============================================================================

@cli.command('intake')
@click.argument('notes', required=False)
@click.option('--store', 'store_name', required=True, help='Store name as spoken on the call')
@click.option('--business', 'business_name', required=True, help='Business the contact works at')
@click.option('--file', 'notes_file', type=click.File('r', encoding='utf-8'),
              help='Read the notes/transcript from a file')
@log_call
def intake(notes, store_name, business_name, notes_file):
    """Create a contact from phone-call notes"""
    if notes_file:
        notes = notes_file.read()
    if not notes:
        click.echo("Error: provide NOTES or --file", err=True)
        return

    try:
        click.echo("\nExtracting call notes...\n")
        contact = call_intake.create_contact_from_call(notes, store_name, business_name)
    except Exception as e:
        _fail('intake', e)
        return

    click.echo(f"✓ Created contact {contact.contact_id}: {contact.display_name}")
    if contact.email:
        click.echo(f"  Email:     {contact.email}")
    if contact.phone:
        click.echo(f"  Phone:     {contact.phone}")
    if contact.reachouts:
        mouths = contact.reachouts[0].donation.mouths()
        if mouths:
            click.echo(f"  Donation:  {mouths} mouths")
    if contact.suggested_follow_up_date:
        click.echo(f"  Follow-up: {contact.suggested_follow_up_method} on {contact.suggested_follow_up_date} "
                   f"({contact.suggested_follow_up_priority})")
        click.echo(f"             {contact.suggested_follow_up_note}")


# =============================================================================
# PLACES
# =============================================================================

@cli.command('nearby')
@click.argument('store_id', type=int)
@click.option('--address', help='Search around this address')
@click.option('--lat', type=float, help='Latitude of the search origin')
@click.option('--lng', type=float, help='Longitude of the search origin')
@click.option('--query', 'text_query', help='Free-text search instead of nearby search')
@click.option('--add', 'add_all', is_flag=True, help='Add every result as an opportunity')
@log_call
def nearby(store_id, address, lat, lng, text_query, add_all):
    """Businesses near a location that the store does not track yet"""
    try:
        places = lead_scout.find_nearby_places(store_id, address=address, lat=lat, lng=lng,
                                               text_query=text_query)
    except Exception as e:
        _fail('nearby', e)
        return

    if not places:
        click.echo("No new places found.")
        return

    click.echo(f"\nFound {len(places)} new places:\n")
    click.echo(f"{'Distance':>9}  {'Name':<30} {'Address':<40}")
    click.echo("-" * 82)
    for p in places:
        distance = f"{round(p.distance_m)} m" if p.distance_m is not None else "?"
        click.echo(f"{distance:>9}  {p.name[:28]:<30} {(p.address or '')[:40]:<40}")

    if add_all:
        inserted, skipped = crm.add_opportunities(store_id, places, created_by='cli')
        click.echo(f"\n✓ Added {len(inserted)} opportunities ({skipped} already tracked)")


@cli.command('discover')
@click.option('--lat', type=float, help='Center latitude')
@click.option('--lng', type=float, help='Center longitude')
@click.option('--radius', type=float, default=None, help='Search radius in meters')
@click.option('--type', 'included_types', multiple=True, help='Place type to include (repeatable)')
@click.option('--query', 'text_query', help='Text search instead of nearby search')
@click.option('--strict', is_flag=True, help='Only return places of the given --type (text search)')
@log_call
def discover(lat, lng, radius, included_types, text_query, strict):
    """Populate the discovered-places cache"""
    mode = 'TEXT' if text_query else 'NEARBY'
    try:
        click.echo(f"\nDiscovery search ({mode})...\n")
        result = lead_scout.discover_places(
            mode,
            center_lat=lat,
            center_lng=lng,
            radius_m=radius,
            included_types=list(included_types) or None,
            text_query=text_query,
            included_type=included_types[0] if included_types else None,
            strict_type_filtering=strict,
            show_progress=True,
        )
    except Exception as e:
        _fail('discover', e)
        return

    click.echo(f"\nSearch results: {result['total_search_results']}")
    click.echo(f"Already known:  {result['existing_count']}")
    click.echo(f"New places:     {len(result['new_places'])}")
    for place in result['new_places']:
        click.echo(f"  [{place.status}] {place.name} - {place.formatted_address or ''}")
    click.echo()


# =============================================================================
# DONATIONS
# =============================================================================

@cli.command('donations')
@click.argument('store_id', type=int)
@click.option('--date', 'date_str', default=None, help='Any day in the quarter, YYYY-MM-DD')
@log_call
def donations_cmd(store_id, date_str):
    """Quarterly donation progress (mouths fed)"""
    try:
        day = date.fromisoformat(date_str) if date_str else None
        progress = donations.quarter_progress(store_id, day)
    except Exception as e:
        _fail('donations', e)
        return

    click.echo(f"\n{progress['quarter']} ({progress['start']} to {progress['end']})")
    click.echo(f"Mouths fed: {progress['totalMouths']} / {progress['goal']} ({progress['percentage']}%)")
    click.echo(f"Donations:  {progress['donationCount']}")
    click.echo()


# =============================================================================
# SERVER
# =============================================================================

@cli.command('serve')
@click.option('--host', default=None, help=f'Bind address (default: {config.API_HOST})')
@click.option('--port', type=int, default=None, help=f'Port (default: {config.API_PORT})')
def serve(host, port):
    """Run the HTTP API"""
    from marketpollen.api.main import run

    run(host=host, port=port)


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    cli()
