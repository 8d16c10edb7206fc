import unittest

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from bsi_telemetry.db.base import Base
from bsi_telemetry.db.models import MetricMapping, MetricMappingAudit, User


class SchemaConstraintTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False, future=True)

    def tearDown(self):
        self.engine.dispose()

    def test_unknown_role_rejected(self):
        with self.SessionLocal() as db:
            db.add(User(username="ok", password_hash="x", role="manager"))
            db.commit()

            db.add(User(username="root", password_hash="x", role="superuser"))
            with self.assertRaises(IntegrityError):
                db.commit()

    def test_unknown_audit_action_rejected(self):
        with self.SessionLocal() as db:
            m = MetricMapping(
                node_name="N1",
                base_station_name="BS1",
                metric_name="fuelLevel",
                column_name="Analog9Value",
            )
            db.add(m)
            db.commit()

            db.add(MetricMappingAudit(mapping_id=m.id, node_name="N1", base_station_name="BS1", action="PURGE"))
            with self.assertRaises(IntegrityError):
                db.commit()
