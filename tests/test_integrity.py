import unittest

import factories
from dotcompliance.core.scope import resolve_scope
from dotcompliance.models.models import RoleKind
from dotcompliance.services import integrity
from dotcompliance.services.party_graph import PartyGraph


class TestIntegrity(unittest.TestCase):
    def setUp(self):
        self.db = factories.make_session()
        self.org = factories.organization(self.db, "Acme")
        self.user = factories.person(self.db, "u1")
        self.good = factories.role(self.db, self.user, RoleKind.ORGANIZATION, self.org.id)
        self.bad = factories.role(self.db, self.user, RoleKind.STAFF, "deleted-org")

    def tearDown(self):
        self.db.close()

    def test_report_lists_dangling_roles(self):
        report = integrity.integrity_report(self.db)
        self.assertEqual([r["role_id"] for r in report["dangling_roles"]], [self.bad.id])
        self.assertEqual(report["duplicate_principals"], {})

    def test_repair_deactivates_and_reports(self):
        reporter = factories.RecordingReporter()
        repaired = integrity.repair_dangling_roles(self.db, actor="admin", reporter=reporter)

        self.assertEqual([r.id for r in repaired], [self.bad.id])
        self.assertEqual(len(reporter.reports), 1)
        self.db.refresh(self.bad)
        self.assertFalse(self.bad.is_active)
        self.assertIsNotNone(self.bad.end_date)
        self.assertEqual(integrity.find_dangling_roles(self.db), [])

        scope = resolve_scope(PartyGraph(self.db), "u1")
        self.assertEqual(scope.dangling_organization_ids, frozenset())
        self.assertIn(self.org.id, scope.granted_organization_ids)

    def test_repair_with_nothing_to_do(self):
        integrity.repair_dangling_roles(self.db)
        self.assertEqual(integrity.repair_dangling_roles(self.db), [])

    def test_duplicate_principals(self):
        second = factories.person(self.db, "u1")
        dupes = integrity.find_duplicate_principals(self.db)
        self.assertEqual(set(dupes["u1"]), {self.user.id, second.id})


if __name__ == "__main__":
    unittest.main()
