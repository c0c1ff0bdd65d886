import logging
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import text, update
from sqlalchemy.exc import IntegrityError

from app.data.models.cart import CartSessionModel
from app.domain.cart import AnonymousOwner, CartStatus, UserOwner
from app.domain.errors import MerchantUnavailable
from app.repos.cart_line_repo import CartLineRepo, customization_key
from app.repos.cart_repo import CartSessionRepo
from app.utils.clock import utcnow


@pytest.fixture
def sessions(db):
    return CartSessionRepo(db)


@pytest.fixture
def lines(db):
    return CartLineRepo(db)


def test_customization_key_ignores_key_order():
    assert customization_key({"spice": "hot", "size": "L"}) == customization_key({"size": "L", "spice": "hot"})
    assert customization_key(None) == customization_key({})
    assert customization_key({"size": "L"}) != customization_key({"size": "M"})


def test_create_rejects_inactive_merchant(sessions, catalog, anon):
    with pytest.raises(MerchantUnavailable):
        sessions.create(anon, catalog.get_merchant(3), utcnow())


def test_create_sets_fixed_ttl_and_external_ref(sessions, catalog, anon):
    now = utcnow()
    session = sessions.create(anon, catalog.get_merchant(1), now)

    assert session.external_ref.startswith("cart_")
    assert session.status == CartStatus.ACTIVE.value
    assert session.expires_at - session.created_at == timedelta(days=7)


def test_find_active_skips_expired_sessions(db, sessions, catalog, anon):
    now = utcnow()
    session = sessions.create(anon, catalog.get_merchant(1), now)
    session.expires_at = now - timedelta(seconds=1)
    db.commit()

    assert sessions.find_active(anon, 1, utcnow()) is None
    #wiersz nadal istnieje
    assert db.get(CartSessionModel, session.id).status == CartStatus.ACTIVE.value


def test_create_expires_stale_session_for_same_owner_and_merchant(db, sessions, catalog, anon):
    now = utcnow()
    old = sessions.create(anon, catalog.get_merchant(1), now)
    old.expires_at = now - timedelta(minutes=1)
    db.commit()

    fresh = sessions.create(anon, catalog.get_merchant(1), utcnow())
    db.commit()
    db.refresh(old)

    assert fresh.id != old.id
    assert old.status == CartStatus.EXPIRED.value


def test_second_active_session_violates_unique_index(db, sessions, catalog, anon):
    merchant = catalog.get_merchant(1)
    sessions.create(anon, merchant, utcnow())

    with pytest.raises(IntegrityError):
        sessions.create(anon, merchant, utcnow())
    db.rollback()


def test_touch_fails_on_stale_version(db, sessions, catalog, anon):
    session = sessions.create(anon, catalog.get_merchant(1), utcnow())
    db.commit()

    assert sessions.touch(session, utcnow()) is True
    assert session.version == 2

    #rownolegla operacja podbila wersje w bazie
    db.execute(
        update(CartSessionModel)
        .where(CartSessionModel.id == session.id)
        .values(version=7)
        .execution_options(synchronize_session=False)
    )

    assert sessions.touch(session, utcnow()) is False
    assert session.version == 2


def test_transfer_ownership_is_one_way(db, sessions, catalog, anon, user):
    session = sessions.create(anon, catalog.get_merchant(1), utcnow())

    assert sessions.transfer_ownership(session, user, utcnow()) is True
    assert session.owner_kind == "USER"
    assert session.owner_ref == "u42"
    assert session.owner == user
    assert sessions.find_active(user, 1, utcnow()).id == session.id

    with pytest.raises(ValueError):
        sessions.transfer_ownership(session, UserOwner("someone-else"), utcnow())


def test_mark_merged_records_user(sessions, catalog, anon):
    session = sessions.create(anon, catalog.get_merchant(1), utcnow())

    assert sessions.mark_merged(session, "u42", utcnow()) is True
    assert session.status == CartStatus.MERGED.value
    assert session.merged_into_owner_id == "u42"
    assert sessions.find_active(anon, 1, utcnow()) is None


def test_find_latest_active_prefers_recently_updated(db, sessions, catalog, anon):
    now = utcnow()
    first = sessions.create(anon, catalog.get_merchant(1), now)
    second = sessions.create(anon, catalog.get_merchant(2), now)
    sessions.touch(first, now + timedelta(seconds=5))

    assert sessions.find_latest_active(anon, now).id == first.id
    assert {s.id for s in sessions.list_active(anon, now)} == {first.id, second.id}


def test_insert_snapshots_discounted_price(sessions, lines, catalog, anon):
    session = sessions.create(anon, catalog.get_merchant(1), utcnow())
    line = lines.insert(session.id, catalog.get_item(1, 8), 2, {}, None, utcnow())

    assert line.unit_price == Decimal("2200.00")
    assert line.line_total == Decimal("4400.00")
    assert line.name == "Jollof Rice"
    assert line.image_url == "jollof.jpg"


def test_insert_uses_default_image_and_clamps(sessions, lines, catalog, anon):
    session = sessions.create(anon, catalog.get_merchant(1), utcnow())
    line = lines.insert(session.id, catalog.get_item(1, 7), 80, None, "no pepper", utcnow())

    assert line.quantity == 50
    assert line.line_total == Decimal("50000.00")
    assert line.image_url == "default-menu-item.jpg"
    assert line.special_instructions == "no pepper"


def test_duplicate_active_line_violates_unique_index(db, sessions, lines, catalog, anon):
    session = sessions.create(anon, catalog.get_merchant(1), utcnow())
    item = catalog.get_item(1, 7)
    lines.insert(session.id, item, 1, {"size": "L"}, None, utcnow())

    with pytest.raises(IntegrityError):
        lines.insert(session.id, item, 1, {"size": "L"}, None, utcnow())
    db.rollback()


def test_upsert_quantity_zero_soft_deletes(sessions, lines, catalog, anon):
    session = sessions.create(anon, catalog.get_merchant(1), utcnow())
    line = lines.insert(session.id, catalog.get_item(1, 7), 3, {}, None, utcnow())

    lines.upsert_quantity(line, 0, utcnow())

    assert line.removed is True
    assert lines.list_active(session.id) == []
    assert lines.get(line.id) is not None
    assert lines.find_by_item(session.id, 7, {}, utcnow()) is None


def test_upsert_quantity_recomputes_total(sessions, lines, catalog, anon):
    session = sessions.create(anon, catalog.get_merchant(1), utcnow())
    line = lines.insert(session.id, catalog.get_item(1, 7), 3, {}, None, utcnow())

    lines.upsert_quantity(line, 4, utcnow())
    assert (line.quantity, line.line_total) == (4, Decimal("4000.00"))

    lines.upsert_quantity(line, 99, utcnow())
    assert (line.quantity, line.line_total) == (50, Decimal("50000.00"))


def test_reassign_session_sums_matching_lines(sessions, lines, catalog, anon, user):
    now = utcnow()
    source = sessions.create(anon, catalog.get_merchant(1), now)
    target = sessions.create(user, catalog.get_merchant(1), now)

    lines.insert(source.id, catalog.get_item(1, 7), 2, {"spice": "hot"}, None, now)
    moved_line = lines.insert(source.id, catalog.get_item(1, 8), 1, {}, "extra plantain", now)
    kept = lines.insert(target.id, catalog.get_item(1, 7), 3, {"spice": "hot"}, None, now)

    affected = lines.reassign_session(source.id, target.id, now)

    assert affected == 2
    assert lines.list_active(source.id) == []
    active = {line.menu_item_id: line for line in lines.list_active(target.id)}
    assert set(active) == {7, 8}
    assert active[7].id == kept.id
    assert active[7].quantity == 5
    assert active[7].line_total == Decimal("5000.00")
    assert active[8].id == moved_line.id
    assert active[8].special_instructions == "extra plantain"


def test_reassign_session_keeps_different_customizations_apart(sessions, lines, catalog, anon, user):
    now = utcnow()
    source = sessions.create(anon, catalog.get_merchant(1), now)
    target = sessions.create(user, catalog.get_merchant(1), now)
    lines.insert(source.id, catalog.get_item(1, 7), 2, {"spice": "hot"}, None, now)
    lines.insert(target.id, catalog.get_item(1, 7), 3, {"spice": "mild"}, None, now)

    lines.reassign_session(source.id, target.id, now)

    assert sorted(line.quantity for line in lines.list_active(target.id)) == [2, 3]


def test_expire_all_stale(db, sessions, catalog, anon, user):
    now = utcnow()
    stale = sessions.create(anon, catalog.get_merchant(1), now)
    live = sessions.create(user, catalog.get_merchant(1), now)
    stale.expires_at = now - timedelta(hours=1)
    db.commit()

    assert sessions.expire_all_stale(utcnow()) == 1
    db.commit()
    db.refresh(stale)
    db.refresh(live)
    assert stale.status == CartStatus.EXPIRED.value
    assert live.status == CartStatus.ACTIVE.value


def test_duplicate_lines_are_folded_into_one(db, caplog, service, lines, anon):
    session_id = service.add_item(anon, 1, 7, quantity=2, customization={"spice": "hot"}).session.id

    #symulacja bazy bez unikalnego indeksu
    db.execute(text("DROP INDEX uq_cart_lines_active_item"))
    lines.insert(session_id, service.catalog.get_item(1, 7), 3, {"spice": "hot"}, None, utcnow())
    db.commit()
    assert len(lines.list_active(session_id)) == 2

    with caplog.at_level(logging.WARNING, logger="app.repos.cart_line_repo"):
        snapshot = service.add_item(anon, 1, 7, quantity=1, customization={"spice": "hot"})

    assert [(line.quantity, line.line_total) for line in snapshot.lines] == [(6, Decimal("6000.00"))]
    assert len(lines.list_active(session_id)) == 1
    assert "duplikat linii pozycji 7" in caplog.text


def test_duplicate_active_sessions_pick_most_recent(db, caplog, sessions, catalog, anon):
    db.execute(text("DROP INDEX uq_cart_sessions_active_owner_merchant"))
    now = utcnow()
    older = sessions.create(anon, catalog.get_merchant(1), now)
    newer = sessions.create(anon, catalog.get_merchant(1), now)
    sessions.touch(older, now + timedelta(seconds=5))
    db.commit()

    with caplog.at_level(logging.WARNING, logger="app.repos.cart_repo"):
        found = sessions.find_active(anon, 1, utcnow())

    assert found.id == older.id
    assert found.id != newer.id
    assert "2 aktywnych sesji" in caplog.text
