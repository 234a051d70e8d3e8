"""Scope resolution over parties and roles."""

import unittest
from datetime import datetime, timedelta

import factories
from dotcompliance.core.policy import Operation, authorize
from dotcompliance.core.scope import resolve_scope
from dotcompliance.models.models import RoleKind
from dotcompliance.services.party_graph import PartyGraph


class TestResolveScope(unittest.TestCase):
    def setUp(self):
        self.db = factories.make_session()
        self.graph = PartyGraph(self.db)

    def tearDown(self):
        self.db.close()

    def test_no_principal_is_anonymous(self):
        scope = resolve_scope(self.graph, None)
        self.assertFalse(scope.is_authenticated)
        self.assertFalse(scope.is_master)

    def test_unknown_principal_has_empty_scope(self):
        scope = resolve_scope(self.graph, "nobody")
        self.assertTrue(scope.is_authenticated)
        self.assertTrue(scope.is_empty)
        self.assertFalse(scope.is_master)
        self.assertEqual(scope.management_level, "new_user")

    def test_master_role_grants_master(self):
        org = factories.organization(self.db, "Beta Haulers")
        p = factories.person(self.db, "u1")
        factories.role(self.db, p, RoleKind.MASTER, org.id)

        scope = resolve_scope(self.graph, "u1")
        self.assertTrue(scope.is_master)
        self.assertIn(org.id, scope.granted_organization_ids)
        self.assertIsNone(scope.owned_organization_id)
        self.assertEqual(scope.management_level, "master")

    def test_owned_organization_grants_master_without_role(self):
        org = factories.organization(self.db, "Owner Co", owner="u2")

        scope = resolve_scope(self.graph, "u2")
        self.assertTrue(scope.is_master)
        self.assertEqual(scope.owned_organization_id, org.id)
        self.assertEqual(scope.owned_organization_ids, frozenset({org.id}))
        self.assertEqual(scope.role_kind_for(org.id), RoleKind.MASTER)

    def test_roles_unioned_across_duplicate_person_parties(self):
        a = factories.organization(self.db, "A")
        b = factories.organization(self.db, "B")
        first = factories.person(self.db, "dup")
        second = factories.person(self.db, "dup")
        factories.role(self.db, first, RoleKind.ORGANIZATION, a.id)
        factories.role(self.db, second, RoleKind.STAFF, b.id)

        scope = resolve_scope(self.graph, "dup")
        self.assertEqual(scope.granted_organization_ids, frozenset({a.id, b.id}))
        self.assertFalse(scope.is_master)
        self.assertEqual(len(scope.party_ids), 2)

    def test_master_role_on_one_of_duplicate_parties(self):
        org = factories.organization(self.db, "A")
        factories.person(self.db, "dup-master")
        holder = factories.person(self.db, "dup-master")
        factories.role(self.db, holder, RoleKind.MASTER, org.id)

        scope = resolve_scope(self.graph, "dup-master")
        self.assertTrue(scope.is_master)
        for op in Operation:
            self.assertTrue(authorize(scope, op, "unrelated-org"))

    def test_inactive_and_expired_roles_are_ignored(self):
        a = factories.organization(self.db, "A")
        b = factories.organization(self.db, "B")
        c = factories.organization(self.db, "C")
        p = factories.person(self.db, "u3")
        factories.role(self.db, p, RoleKind.ORGANIZATION, a.id, is_active=False)
        factories.role(self.db, p, RoleKind.ORGANIZATION, b.id,
                       end_date=datetime.utcnow() - timedelta(days=1))
        factories.role(self.db, p, RoleKind.ORGANIZATION, c.id,
                       end_date=datetime.utcnow() + timedelta(days=30))

        scope = resolve_scope(self.graph, "u3")
        self.assertEqual(scope.granted_organization_ids, frozenset({c.id}))

    def test_deactivated_master_role_revokes_master(self):
        org = factories.organization(self.db, "A")
        p = factories.person(self.db, "u4")
        factories.role(self.db, p, RoleKind.MASTER, org.id, is_active=False)

        scope = resolve_scope(self.graph, "u4")
        self.assertFalse(scope.is_master)
        self.assertNotIn(org.id, scope.granted_organization_ids)

    def test_resolution_is_idempotent(self):
        org = factories.organization(self.db, "A")
        p = factories.person(self.db, "u5")
        factories.role(self.db, p, RoleKind.ADMIN, org.id)

        self.assertEqual(resolve_scope(self.graph, "u5"), resolve_scope(self.graph, "u5"))

    def test_role_on_missing_organization_is_dangling(self):
        p = factories.person(self.db, "u6")
        factories.role(self.db, p, RoleKind.ORGANIZATION, "gone-org")

        scope = resolve_scope(self.graph, "u6")
        self.assertIn("gone-org", scope.dangling_organization_ids)
        self.assertNotIn("gone-org", scope.granted_organization_ids)

    def test_strongest_role_kind_wins(self):
        org = factories.organization(self.db, "A")
        loc = factories.location(self.db, org)
        p = factories.person(self.db, "u7")
        factories.role(self.db, p, RoleKind.LOCATION, org.id, loc.id)
        factories.role(self.db, p, RoleKind.ORGANIZATION, org.id)

        scope = resolve_scope(self.graph, "u7")
        self.assertEqual(scope.role_kind_for(org.id), RoleKind.ORGANIZATION)

    def test_location_roles_collect_locations(self):
        org = factories.organization(self.db, "A")
        north = factories.location(self.db, org, "North")
        south = factories.location(self.db, org, "South")
        p = factories.person(self.db, "u8")
        factories.role(self.db, p, RoleKind.LOCATION, org.id, north.id)
        factories.role(self.db, p, RoleKind.LOCATION, org.id, south.id)

        scope = resolve_scope(self.graph, "u8")
        self.assertEqual(scope.location_ids_by_organization[org.id], frozenset({north.id, south.id}))
        self.assertEqual(scope.management_level, "location")

    def test_consultant_without_organizations(self):
        p = factories.person(self.db, "c1")
        factories.role(self.db, p, RoleKind.CONSULTANT)

        scope = resolve_scope(self.graph, "c1")
        self.assertTrue(scope.is_consultant)
        self.assertEqual(scope.management_level, "consultant")


if __name__ == "__main__":
    unittest.main()
