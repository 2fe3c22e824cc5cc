"""Maintenance commands, available as ``artshop <command>`` or ``flask <command>``."""
import click
from flask.cli import FlaskGroup, with_appcontext
from sqlalchemy import select

from .db import get_engine, main_session
from .models import Base, Product, Section
from .storage import StorageError, b2, github

DEMO_CATALOG = {
    "Paintings": {
        "description": "Original works on canvas and paper",
        "subsections": {
            "Oil": [("Monsoon Harbour", "Oil on canvas, 24x36 in", 1850000, ["oil", "seascape"]),
                    ("Evening Fields", "Oil on board, 12x16 in", 920000, ["oil", "landscape"])],
            "Watercolour": [("Lotus Pond", "Watercolour on cotton paper", 450000, ["watercolour"])],
        },
    },
    "Prints": {
        "description": "Limited edition giclee prints",
        "subsections": {
            "Small Prints": [("Lotus Pond (A4)", "Signed print, edition of 50", 250000, ["print"])],
        },
    },
}


def _is_url(value):
    return bool(value) and value.startswith(("http://", "https://"))


@click.command("init-db")
@with_appcontext
def init_db_command():
    """Create all tables."""
    Base.metadata.create_all(get_engine())
    click.echo("Tables created.")


@click.command("drop-db")
@click.confirmation_option(prompt="Drop every table and all data?")
@with_appcontext
def drop_db_command():
    Base.metadata.drop_all(get_engine())
    click.echo("Dropped all tables. They'll be recreated on app start.")


@click.command("seed")
@with_appcontext
def seed_command():
    """Insert the demo catalog; existing rows are updated in place."""
    count = 0
    with main_session() as db:
        for name, entry in DEMO_CATALOG.items():
            main = db.execute(
                select(Section).where(Section.name == name, Section.parent_id.is_(None))
            ).scalar_one_or_none()
            if not main:
                main = Section(name=name)
                db.add(main)
            main.description = entry["description"]
            db.flush()
            for sub_name, products in entry["subsections"].items():
                sub = db.execute(
                    select(Section).where(Section.name == sub_name, Section.parent_id == main.id)
                ).scalar_one_or_none()
                if not sub:
                    sub = Section(name=sub_name, parent_id=main.id)
                    db.add(sub)
                    db.flush()
                for title, description, price_cents, tags in products:
                    p = db.execute(
                        select(Product).where(Product.title == title, Product.section_id == sub.id)
                    ).scalar_one_or_none()
                    if not p:
                        p = Product(title=title, section_id=sub.id, images=[])
                        db.add(p)
                    p.description = description
                    p.price_cents = price_cents
                    p.tags = tags
                    count += 1
        db.commit()
    click.echo(f"Seeded products: {count}")


@click.command("inspect-images")
@with_appcontext
def inspect_images_command():
    """Show which image references are stored for sections and products."""
    with main_session() as db:
        sections = db.execute(
            select(Section).where(Section.cover_image.is_not(None)).order_by(Section.id)
        ).scalars().all()
        click.echo(f"Sections with cover images: {len(sections)}")
        for s in sections:
            click.echo(f"  #{s.id} {s.name}: {s.cover_image}")

        products = db.execute(select(Product).order_by(Product.id)).scalars().all()
        with_images = [p for p in products if p.images]
        click.echo(f"Products with images: {len(with_images)}")
        for p in with_images:
            click.echo(f"  #{p.id} {p.title}: {len(p.images)} image(s)")
            for key in p.images:
                click.echo(f"    {key}")


def _copy_to_github(key, dry_run):
    if dry_run:
        return github.raw_url(key)
    data = b2.download_from_b2(key)
    github.put_file(key, data, f"Migrate image from B2: {key}", sha=github.file_sha(key))
    return github.raw_url(key)


@click.command("migrate-images")
@click.option("--dry-run", is_flag=True, help="Report what would move without writing anything.")
@with_appcontext
def migrate_images_command(dry_run):
    """Copy B2-hosted images into the GitHub repository and store their raw URLs."""
    stats = {"sections": 0, "products": 0, "images": 0, "errors": 0}
    with main_session() as db:
        for s in db.execute(select(Section).order_by(Section.id)).scalars().all():
            if not s.cover_image or _is_url(s.cover_image):
                continue
            try:
                url = _copy_to_github(s.cover_image, dry_run)
            except StorageError as e:
                stats["errors"] += 1
                click.echo(f"  section #{s.id}: {e}", err=True)
                continue
            click.echo(f"  section #{s.id} {s.cover_image} -> {url}")
            if not dry_run:
                s.cover_image = url
            stats["sections"] += 1
            stats["images"] += 1

        for p in db.execute(select(Product).order_by(Product.id)).scalars().all():
            pending = [k for k in p.images or [] if not _is_url(k)]
            if not pending:
                continue
            migrated = {}
            for key in pending:
                try:
                    migrated[key] = _copy_to_github(key, dry_run)
                except StorageError as e:
                    stats["errors"] += 1
                    click.echo(f"  product #{p.id}: {e}", err=True)
                    continue
                click.echo(f"  product #{p.id} {key} -> {migrated[key]}")
            if migrated:
                if not dry_run:
                    p.images = [migrated.get(k, k) for k in p.images]
                stats["products"] += 1
                stats["images"] += len(migrated)

        if not dry_run:
            db.commit()

    prefix = "Would migrate" if dry_run else "Migrated"
    click.echo(f"{prefix} {stats['images']} image(s): {stats['sections']} section(s), "
               f"{stats['products']} product(s), {stats['errors']} error(s)")


COMMANDS = (init_db_command, drop_db_command, seed_command, inspect_images_command,
            migrate_images_command)


def register_cli(app):
    for command in COMMANDS:
        app.cli.add_command(command)


def main():
    from .app import create_app
    FlaskGroup(create_app=create_app)()
