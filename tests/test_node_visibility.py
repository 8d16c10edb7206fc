import datetime as dt
import unittest
from types import SimpleNamespace

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bsi_telemetry.db.base import Base
from bsi_telemetry.db.models import NodeAssignment, User, node_status_table
from bsi_telemetry.services.access_control_service import (
    AccessControlService,
    NodeAccessDenied,
    has_unrestricted_access,
    is_node_visible,
)


def _user(role="viewer", access_all_nodes=False, is_active=True):
    return SimpleNamespace(role=role, access_all_nodes=access_all_nodes, is_active=is_active)


def _grant(node_name, base_station_name=None):
    return SimpleNamespace(node_name=node_name, base_station_name=base_station_name)


class VisibilityPredicateTests(unittest.TestCase):
    def test_admin_and_access_all_see_everything(self):
        self.assertTrue(is_node_visible(_user("admin"), "N1", []))
        self.assertTrue(is_node_visible(_user("viewer", access_all_nodes=True), "N1", [], "BS9"))
        self.assertTrue(has_unrestricted_access(_user("admin")))
        self.assertFalse(has_unrestricted_access(_user("manager")))

    def test_inactive_user_sees_nothing(self):
        self.assertFalse(is_node_visible(_user("admin", is_active=False), "N1", []))
        self.assertFalse(is_node_visible(_user(is_active=False), "N1", [_grant("N1")]))

    def test_unassigned_node_hidden(self):
        self.assertFalse(is_node_visible(_user(), "N2", [_grant("N1")]))
        self.assertFalse(is_node_visible(_user("manager"), "N2", []))

    def test_assignment_without_base_station_covers_all(self):
        grants = [_grant("N1")]
        self.assertTrue(is_node_visible(_user(), "N1", grants))
        self.assertTrue(is_node_visible(_user(), "N1", grants, "BS1"))
        self.assertTrue(is_node_visible(_user(), "N1", grants, "BS2"))

    def test_assignment_with_base_station_is_narrow(self):
        grants = [_grant("N1", "BS1")]
        self.assertTrue(is_node_visible(_user(), "N1", grants))
        self.assertTrue(is_node_visible(_user(), "N1", grants, "BS1"))
        self.assertFalse(is_node_visible(_user(), "N1", grants, "BS2"))


class AccessControlServiceTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite://")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.svc = AccessControlService()

        t = dt.datetime(2024, 1, 1, 12, 0, tzinfo=dt.timezone.utc)
        with self.Session() as db:
            for node, bs in (("N1", "BS1"), ("N1", "BS2"), ("N2", "BS1"), ("N3", "BS3")):
                db.execute(node_status_table.insert().values(NodeName=node, NodeBaseStationName=bs, time=t))
            self.viewer = User(username="v", email="v@example.com", password_hash="x", role="viewer")
            self.admin = User(username="a", email="a@example.com", password_hash="x", role="admin")
            db.add_all([self.viewer, self.admin])
            db.flush()
            db.add_all(
                [
                    NodeAssignment(user_id=self.viewer.id, node_name="N1", base_station_name="BS2"),
                    NodeAssignment(user_id=self.viewer.id, node_name="N3"),
                    # no samples for this node; drops out of the visible list
                    NodeAssignment(user_id=self.viewer.id, node_name="GHOST"),
                ]
            )
            db.commit()

    def tearDown(self):
        self.engine.dispose()

    def test_visible_nodes(self):
        with self.Session() as db:
            self.assertEqual(self.svc.visible_nodes(db, self.admin), ["N1", "N2", "N3"])
            self.assertEqual(self.svc.visible_nodes(db, self.viewer), ["N1", "N3"])

    def test_visible_base_stations(self):
        with self.Session() as db:
            self.assertEqual(self.svc.visible_base_stations(db, self.viewer, "N1"), ["BS2"])
            self.assertEqual(self.svc.visible_base_stations(db, self.viewer, "N3"), ["BS3"])
            self.assertEqual(self.svc.visible_base_stations(db, self.admin, "N1"), ["BS1", "BS2"])

    def test_ensure_visible(self):
        with self.Session() as db:
            self.svc.ensure_visible(db, self.viewer, "N1", "BS2")
            with self.assertRaises(NodeAccessDenied):
                self.svc.ensure_visible(db, self.viewer, "N1", "BS1")
            with self.assertRaises(NodeAccessDenied):
                self.svc.ensure_visible(db, self.viewer, "N2")

    def test_inactive_user(self):
        self.viewer.is_active = False
        with self.Session() as db:
            self.assertEqual(self.svc.visible_nodes(db, self.viewer), [])
            self.assertFalse(self.svc.can_view(db, self.viewer, "N3"))
