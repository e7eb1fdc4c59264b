import pytest

from pfmp.modules.auth.identity import Identity
from pfmp.modules.conventions.exceptions import BulkPartialFailure, EmptySignature
from pfmp.modules.mission_orders.models import MissionOrderStatus
from pfmp.modules.mission_orders.services.mission_order_service import MissionOrderService, mission_order_hash

from factories import EMAILS, blank_signature, drawn_signature, identity, make_convention


@pytest.fixture
def orders(session):
    return MissionOrderService(session)


def create_order(session, orders, teacher="suivi.prof@lycee.fr", distance_km=8.0, **overrides):
    convention = make_convention(session, **overrides)
    return orders.create(convention, teacher, {"street": "1 place du Lycée", "city": "Lyon"}, distance_km)


def test_create_is_idempotent_per_teacher(session, orders):
    order = create_order(session, orders)
    assert order.status is MissionOrderStatus.PENDING
    assert orders.create(order.convention, "SUIVI.prof@lycee.fr").id == order.id


def test_school_head_signs(session, orders):
    order = create_order(session, orders)
    report = orders.sign([order.id], identity("head"), drawn_signature(), signer_name="Durand Paul")

    assert report.signed_ids == [order.id]
    session.refresh(order)
    assert order.status is MissionOrderStatus.SIGNED
    assert order.signer_email == EMAILS["head"]
    assert order.signature_hash.startswith("ODM-")
    assert order.signature_hash == mission_order_hash(order)


def test_only_the_school_head_signs(session, orders):
    order = create_order(session, orders)
    with pytest.raises(BulkPartialFailure) as exc:
        orders.sign([order.id], identity("teacher"), drawn_signature())
    assert exc.value.report.signed == 0
    session.refresh(order)
    assert order.status is MissionOrderStatus.PENDING


def test_distance_filter_and_partial_failure(session, orders):
    near = create_order(session, orders, distance_km=5)
    far = create_order(session, orders, distance_km=80)
    signed_already = create_order(session, orders, distance_km=3)
    orders.sign([signed_already.id], identity("head"), drawn_signature())

    with pytest.raises(BulkPartialFailure) as exc:
        orders.sign([near.id, far.id, signed_already.id, 12345], identity("head"), drawn_signature(),
                    max_distance_km=50)

    report = exc.value.report
    assert report.signed_ids == [near.id]
    assert [order_id for order_id, _ in report.failures] == [far.id, signed_already.id, 12345]
    session.refresh(far)
    assert far.status is MissionOrderStatus.PENDING


def test_blank_signature_refused(session, orders):
    order = create_order(session, orders)
    with pytest.raises(EmptySignature):
        orders.sign([order.id], identity("head"), blank_signature())


def test_list_for(session, orders):
    mine = create_order(session, orders, teacher="suivi.prof@lycee.fr")
    create_order(session, orders, teacher="autre.prof@lycee.fr", school_head_email="autre.chef@lycee.fr")

    assert [o.id for o in orders.list_for(identity("head"))] == [mine.id]
    assert len(orders.list_for(identity("admin", privileged=True))) == 2
    other = orders.list_for(Identity(email="autre.prof@lycee.fr"))
    assert len(other) == 1 and other[0].id != mine.id
