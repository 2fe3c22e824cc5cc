import pytest
from sqlalchemy import inspect, select

from artshop import cli
from artshop.db import get_engine, main_session
from artshop.models import Product, Section
from artshop.storage import StorageError


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def b2_images(app):
    with app.app_context(), main_session() as db:
        main = Section(name="Paintings", cover_image="sections/cover.jpg")
        db.add(main)
        db.flush()
        sub = Section(name="Oil", parent_id=main.id)
        db.add(sub)
        db.flush()
        db.add(Product(title="Dawn", price_cents=100, section_id=sub.id,
                       images=["products/a.jpg", "https://raw.githubusercontent.com/artist/gallery/main/products/b.jpg"]))
        db.commit()


@pytest.fixture
def copied(monkeypatch):
    """Records keys written to GitHub by the migration."""
    writes = []
    monkeypatch.setattr(cli.b2, "download_from_b2", lambda key: f"bytes:{key}".encode())
    monkeypatch.setattr(cli.github, "file_sha", lambda key: None)
    monkeypatch.setattr(cli.github, "put_file",
                        lambda key, data, message, sha=None: writes.append((key, data)))
    return writes


def test_seed_is_idempotent(runner, app):
    first = runner.invoke(args=["seed"])
    assert first.exit_code == 0, first.output
    assert "Seeded products: 4" in first.output
    runner.invoke(args=["seed"])
    with app.app_context(), main_session() as db:
        assert len(db.execute(select(Product)).scalars().all()) == 4
        mains = db.execute(select(Section).where(Section.parent_id.is_(None))).scalars().all()
        assert sorted(s.name for s in mains) == ["Paintings", "Prints"]


def test_inspect_images(runner, b2_images):
    result = runner.invoke(args=["inspect-images"])
    assert result.exit_code == 0
    assert "Sections with cover images: 1" in result.output
    assert "products/a.jpg" in result.output


def test_migrate_images_dry_run_changes_nothing(runner, app, b2_images, copied):
    result = runner.invoke(args=["migrate-images", "--dry-run"])
    assert result.exit_code == 0, result.output
    assert "Would migrate 2 image(s): 1 section(s), 1 product(s), 0 error(s)" in result.output
    assert copied == []
    with app.app_context(), main_session() as db:
        assert db.execute(select(Section).where(Section.name == "Paintings")).scalar_one().cover_image == \
            "sections/cover.jpg"


def test_migrate_images_rewrites_keys(runner, app, b2_images, copied):
    result = runner.invoke(args=["migrate-images"])
    assert result.exit_code == 0, result.output
    assert "Migrated 2 image(s)" in result.output
    assert copied == [("sections/cover.jpg", b"bytes:sections/cover.jpg"),
                      ("products/a.jpg", b"bytes:products/a.jpg")]
    raw = "https://raw.githubusercontent.com/artist/gallery/main/"
    with app.app_context(), main_session() as db:
        product = db.execute(select(Product)).scalar_one()
        assert product.images == [raw + "products/a.jpg", raw + "products/b.jpg"]
        section = db.execute(select(Section).where(Section.name == "Paintings")).scalar_one()
        assert section.cover_image == raw + "sections/cover.jpg"


def test_migrate_images_counts_errors(runner, app, b2_images, copied, monkeypatch):
    def missing(key):
        raise StorageError(f"Failed to download {key} from B2")

    monkeypatch.setattr(cli.b2, "download_from_b2", missing)
    result = runner.invoke(args=["migrate-images"])
    assert result.exit_code == 0
    assert "Migrated 0 image(s): 0 section(s), 0 product(s), 2 error(s)" in result.output
    with app.app_context(), main_session() as db:
        assert db.execute(select(Product)).scalar_one().images[0] == "products/a.jpg"


def test_drop_and_init_db(runner, app):
    assert runner.invoke(args=["drop-db", "--yes"]).exit_code == 0
    with app.app_context():
        assert inspect(get_engine()).get_table_names() == []
    assert runner.invoke(args=["init-db"]).exit_code == 0
    with app.app_context():
        assert "orders" in inspect(get_engine()).get_table_names()
