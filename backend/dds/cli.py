# Overview: Flask CLI command groups for bootstrap, master data and inspection.

# backend/dds/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent; use Flask-Migrate for schema changes).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Two departments, a NRM type, one user per department and a few documents.
#
# Master data:
# - python -m flask departments list
# - python -m flask departments create --name "Accounting" --code ACC
# - python -m flask types list
# - python -m flask types create --name "Normal" --code NRM --priority 3
#
# Inspection:
# - python -m flask distributions show 25/ACC/NRM/0001
# - python -m flask distributions history 12

from datetime import date

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import (
    AdditionalDocument,
    Department,
    Distribution,
    DistributionType,
    Invoice,
    User,
)
from .services import distribution_service
from .services.errors import DistributionError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate every table."""
    if not yes and not click.confirm("This deletes ALL data. Continue?"):
        click.echo("Aborted")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Seed a minimal demo dataset (idempotent).

    Creates:
    - Departments: Accounting (ACC), Finance (FIN)
    - Distribution type: Normal (NRM)
    - Users: acc_user (Accounting), fin_user (Finance)
    - Invoices INV-001..003 at ACC, INV-001 with one supporting document
    """
    click.echo("START Seeding demo data...")

    departments = {}
    for name, code in (("Accounting", "ACC"), ("Finance", "FIN")):
        dept = db.session.query(Department).filter_by(location_code=code).first()
        if not dept:
            dept = Department(name=name, location_code=code)
            db.session.add(dept)
            db.session.flush()
            click.echo(f"PASS Created department {name} ({code})")
        departments[code] = dept

    if not db.session.query(DistributionType).filter_by(code="NRM").first():
        db.session.add(DistributionType(name="Normal", code="NRM", color="#28a745", priority=3))
        click.echo("PASS Created distribution type Normal (NRM)")

    for username, code in (("acc_user", "ACC"), ("fin_user", "FIN")):
        if not db.session.query(User).filter_by(username=username).first():
            db.session.add(User(
                name=username.replace("_", " ").title(),
                username=username,
                email=f"{username}@dds.local",
                department_id=departments[code].id,
            ))
            click.echo(f"PASS Created user {username} in {code}")

    if not db.session.query(Invoice).first():
        for i in range(1, 4):
            invoice = Invoice(
                invoice_number=f"INV-{i:03d}",
                supplier_name="Demo Supplier",
                invoice_date=date.today(),
                amount=1000 * i,
                cur_loc="ACC",
            )
            db.session.add(invoice)
            if i == 1:
                invoice.additional_documents.append(AdditionalDocument(
                    document_number="ITO-001",
                    document_type="ITO",
                    document_date=date.today(),
                    cur_loc="ACC",
                ))
        click.echo("PASS Created demo invoices")

    db.session.commit()
    click.echo("DONE Demo data ready")


@click.group('departments')
def departments_group():
    """Department master data."""


@departments_group.command('list')
@with_appcontext
def list_departments():
    rows = db.session.query(Department).order_by(Department.location_code).all()
    if not rows:
        click.echo("No departments found")
        return
    for dept in rows:
        status = "active" if dept.is_active else "inactive"
        click.echo(f"{dept.id:>4}  {dept.location_code:<10} {dept.name} ({status})")


@departments_group.command('create')
@click.option('--name', required=True, help='Department name')
@click.option('--code', required=True, help='Location code (unique)')
@click.option('--project', help='Project code')
@with_appcontext
def create_department(name, code, project):
    if db.session.query(Department).filter_by(location_code=code).first():
        click.echo(f"FAIL Department with code {code} already exists")
        return
    dept = Department(name=name, location_code=code, project=project)
    db.session.add(dept)
    db.session.commit()
    click.echo(f"PASS Created department {dept.name} (ID: {dept.id}, Code: {dept.location_code})")


@click.group('types')
def types_group():
    """Distribution type master data."""


@types_group.command('list')
@with_appcontext
def list_types():
    rows = db.session.query(DistributionType).order_by(DistributionType.priority).all()
    if not rows:
        click.echo("No distribution types found")
        return
    for dist_type in rows:
        click.echo(f"{dist_type.id:>4}  {dist_type.code:<6} {dist_type.name} (priority {dist_type.priority})")


@types_group.command('create')
@click.option('--name', required=True, help='Type name')
@click.option('--code', required=True, help='Type code used in distribution numbers')
@click.option('--priority', type=int, default=1, show_default=True, help='Lower is more urgent')
@click.option('--color', help='Badge color')
@with_appcontext
def create_type(name, code, priority, color):
    if db.session.query(DistributionType).filter_by(code=code).first():
        click.echo(f"FAIL Distribution type {code} already exists")
        return
    dist_type = DistributionType(name=name, code=code, priority=priority, color=color)
    db.session.add(dist_type)
    db.session.commit()
    click.echo(f"PASS Created distribution type {dist_type.name} (ID: {dist_type.id}, Code: {dist_type.code})")


@click.group('distributions')
def distributions_group():
    """Distribution inspection."""


@distributions_group.command('show')
@click.argument('number')
@with_appcontext
def show_distribution(number):
    """Show a distribution by its number."""
    distribution = db.session.query(Distribution).filter_by(distribution_number=number).first()
    if not distribution:
        click.echo(f"FAIL Distribution {number} not found")
        return
    click.echo(f"{distribution.distribution_number}  status={distribution.status}")
    click.echo(
        f"  {distribution.origin_department.location_code} -> "
        f"{distribution.destination_department.location_code}  "
        f"type={distribution.type.code}  discrepancies={distribution.has_discrepancies}"
    )
    for row in distribution.documents:
        companion = " (companion)" if row.is_companion else ""
        click.echo(
            f"  - {row.document_type} {row.document_id}{companion}: "
            f"sender={row.sender_verification_status or '-'} "
            f"receiver={row.receiver_verification_status or '-'}"
        )


@distributions_group.command('history')
@click.argument('distribution_id', type=int)
@with_appcontext
def show_history(distribution_id):
    """Print the audit trail of a distribution."""
    try:
        rows = distribution_service.get_history(distribution_id)
    except DistributionError as e:
        click.echo(f"FAIL {e}")
        return
    for entry in rows:
        click.echo(f"{entry.created_at}  {entry.action:<22} user={entry.user_id}  {entry.notes or ''}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(departments_group)
    app.cli.add_command(types_group)
    app.cli.add_command(distributions_group)
