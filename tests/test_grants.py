"""Authorization-state writes and their visibility to scope resolution."""

import unittest

import factories
from dotcompliance.core.errors import DuplicateDotNumberError, DuplicatePartyError, GrantError, PartyKindError
from dotcompliance.core.hierarchy import expand_organization
from dotcompliance.core.scope import resolve_scope
from dotcompliance.models.models import ActivityLog, Organization, Party, Person, Role, RoleKind, Staff
from dotcompliance.services import grants
from dotcompliance.services.party_graph import PartyGraph


class GrantsTestCase(unittest.TestCase):
    def setUp(self):
        self.db = factories.make_session()
        self.graph = PartyGraph(self.db)

    def tearDown(self):
        self.db.close()

    def scope(self, principal_id):
        return resolve_scope(self.graph, principal_id)


class TestPersonParties(GrantsTestCase):
    def test_second_person_party_rejected(self):
        grants.create_person_party(self.db, "u1", "Ana", "Diaz")
        with self.assertRaises(DuplicatePartyError):
            grants.create_person_party(self.db, "u1", "Ana", "Diaz")
        self.assertEqual(self.db.query(Party).filter(Party.user_id == "u1").count(), 1)


class TestOnboarding(GrantsTestCase):
    def test_organization_onboarding_makes_owner_master(self):
        result = grants.onboard_principal(self.db, "u1", "Ana", "Diaz", "organization",
                                          organization_name="Diaz Trucking")
        scope = self.scope("u1")
        self.assertTrue(scope.is_master)
        self.assertEqual(scope.owned_organization_id, result["organization"].id)
        self.assertEqual(result["role"].role_type, RoleKind.ORGANIZATION)

    def test_onboarding_twice_rejected(self):
        grants.onboard_principal(self.db, "u1", "Ana", "Diaz", "master", organization_name="Diaz")
        with self.assertRaises(DuplicatePartyError):
            grants.onboard_principal(self.db, "u1", "Ana", "Diaz", "master", organization_name="Diaz 2")

    def test_consultant_onboarding(self):
        result = grants.onboard_principal(self.db, "c1", "Cy", "Ng", "consultant")
        self.assertIsNone(result["organization"])
        scope = self.scope("c1")
        self.assertTrue(scope.is_consultant)
        self.assertFalse(scope.is_master)

    def test_organization_name_required(self):
        with self.assertRaises(GrantError):
            grants.onboard_principal(self.db, "u1", "Ana", "Diaz", "organization")

    def test_driver_cannot_onboard(self):
        with self.assertRaises(GrantError):
            grants.onboard_principal(self.db, "u1", "Ana", "Diaz", "driver", organization_name="X")

    def test_unknown_role_type(self):
        with self.assertRaises(ValueError):
            grants.onboard_principal(self.db, "u1", "Ana", "Diaz", "pilot", organization_name="X")


class TestManagedOrganizations(GrantsTestCase):
    def setUp(self):
        super().setUp()
        grants.onboard_principal(self.db, "owner", "Oli", "Park", "master", organization_name="Park Logistics")

    def test_created_organization_is_in_owner_scope(self):
        org = grants.create_managed_organization(self.db, self.scope("owner"), "Park East", dot_number="123456")
        scope = self.scope("owner")
        self.assertIn(org.id, scope.granted_organization_ids)
        self.assertEqual(scope.role_kind_for(org.id), RoleKind.MASTER)

    def test_duplicate_dot_number_rejected(self):
        grants.create_managed_organization(self.db, self.scope("owner"), "Park East", dot_number="123456")
        with self.assertRaises(DuplicateDotNumberError):
            grants.create_managed_organization(self.db, self.scope("owner"), "Park West", dot_number="123456")

    def test_no_dot_placeholder_allows_many(self):
        grants.create_managed_organization(self.db, self.scope("owner"), "One", dot_number=grants.NO_DOT)
        org = grants.create_managed_organization(self.db, self.scope("owner"), "Two", dot_number=grants.NO_DOT)
        self.assertIsNone(org.dot_number)

    def test_requires_owned_organization(self):
        with self.assertRaises(GrantError):
            grants.create_managed_organization(self.db, self.scope("someone-else"), "Nope")


class TestClaim(GrantsTestCase):
    def test_claim_unowned_organizations(self):
        a = factories.organization(self.db, "Imported A")
        factories.organization(self.db, "Owned B", owner="other")

        unclaimed = grants.list_unclaimed_organizations(self.db)
        self.assertEqual([o.id for o in unclaimed], [a.id])

        claimed = grants.claim_organizations(self.db, "claimer", [a.id])
        self.assertEqual([o.id for o in claimed], [a.id])
        scope = self.scope("claimer")
        self.assertTrue(scope.is_master)
        self.assertIn(a.id, scope.granted_organization_ids)
        self.assertEqual(grants.list_unclaimed_organizations(self.db), [])

    def test_claim_requires_ids(self):
        with self.assertRaises(GrantError):
            grants.claim_organizations(self.db, "claimer", [])


class TestRoleGrants(GrantsTestCase):
    def setUp(self):
        super().setUp()
        self.org = factories.organization(self.db, "Acme")
        self.member = factories.person(self.db, "member")

    def test_grant_visible_to_next_resolution(self):
        self.assertNotIn(self.org.id, self.scope("member").granted_organization_ids)
        grants.grant_role(self.db, self.member.id, "manager", self.org.id, actor="admin")
        self.assertEqual(self.scope("member").role_kind_for(self.org.id), RoleKind.MANAGER)

    def test_deactivation_visible_to_next_resolution(self):
        role = grants.grant_role(self.db, self.member.id, RoleKind.ORGANIZATION, self.org.id)
        grants.deactivate_role(self.db, role.id, reason="left company", actor="admin")
        self.assertNotIn(self.org.id, self.scope("member").granted_organization_ids)

    def test_deactivate_twice_rejected(self):
        role = grants.grant_role(self.db, self.member.id, RoleKind.ORGANIZATION, self.org.id)
        grants.deactivate_role(self.db, role.id)
        with self.assertRaises(GrantError):
            grants.deactivate_role(self.db, role.id)

    def test_location_role_needs_location(self):
        with self.assertRaises(GrantError):
            grants.grant_role(self.db, self.member.id, RoleKind.LOCATION, self.org.id)

    def test_location_must_belong_to_organization(self):
        other = factories.organization(self.db, "Other")
        loc = factories.location(self.db, other)
        with self.assertRaises(GrantError):
            grants.grant_role(self.db, self.member.id, RoleKind.LOCATION, self.org.id, loc.id)

    def test_grant_is_logged(self):
        role = grants.grant_role(self.db, self.member.id, RoleKind.STAFF, self.org.id, actor="admin")
        log = self.db.query(ActivityLog).filter(ActivityLog.entity_id == role.id).one()
        self.assertEqual(log.action, "grant_role")
        self.assertEqual(log.principal_id, "admin")
        self.assertEqual(log.organization_id, self.org.id)

    def test_driver_belongs_to_one_organization(self):
        other = factories.organization(self.db, "Other")
        grants.grant_role(self.db, self.member.id, RoleKind.DRIVER, self.org.id)
        with self.assertRaises(GrantError):
            grants.grant_role(self.db, self.member.id, RoleKind.DRIVER, other.id)
        grants.grant_role(self.db, self.member.id, RoleKind.STAFF, other.id)

    def test_driver_moves_after_leaving(self):
        other = factories.organization(self.db, "Other")
        role = grants.grant_role(self.db, self.member.id, RoleKind.DRIVER, self.org.id)
        grants.deactivate_role(self.db, role.id)
        moved = grants.grant_role(self.db, self.member.id, RoleKind.DRIVER, other.id)
        self.assertEqual(moved.organization_id, other.id)


class TestMembers(GrantsTestCase):
    def test_created_driver_and_equipment_join_organization(self):
        org = factories.organization(self.db, "Acme")
        loc = grants.create_location(self.db, org.id, "Depot", is_main_location=True)
        driver = grants.create_driver(self.db, org.id, "Dee", "Rivers", location_id=loc.id)
        truck = grants.create_equipment(self.db, org.id, "T-9", location_id=loc.id)

        members = expand_organization(self.graph, org.id)
        self.assertIn(driver.id, members)
        self.assertIn(truck.id, members)

    def test_single_main_location(self):
        org = factories.organization(self.db, "Acme")
        first = grants.create_location(self.db, org.id, "Depot", is_main_location=True)
        second = grants.create_location(self.db, org.id, "Hub", is_main_location=True)
        self.db.refresh(first)
        self.assertFalse(first.is_main_location)
        self.assertTrue(second.is_main_location)


class TestStaff(GrantsTestCase):
    def setUp(self):
        super().setUp()
        self.org = factories.organization(self.db, "Acme")
        self.person = factories.person(self.db, "safety-user")

    def test_staff_joins_organization(self):
        staff = grants.create_staff(self.db, self.org.id, self.person.id, actor="admin",
                                    position="Safety Manager", can_sign_cafs=True)
        self.assertTrue(staff.can_sign_cafs)
        self.assertFalse(staff.can_approve_cafs)
        self.assertEqual(self.scope("safety-user").role_kind_for(self.org.id), RoleKind.STAFF)

    def test_existing_member_keeps_its_role(self):
        factories.role(self.db, self.person, RoleKind.MANAGER, self.org.id)
        grants.create_staff(self.db, self.org.id, self.person.id)
        roles = self.db.query(Role).filter(Role.party_id == self.person.id).all()
        self.assertEqual([r.role_type for r in roles], [RoleKind.MANAGER])

    def test_one_staff_record_per_party(self):
        grants.create_staff(self.db, self.org.id, self.person.id)
        with self.assertRaises(GrantError):
            grants.create_staff(self.db, self.org.id, self.person.id)
        self.assertEqual(self.db.query(Staff).count(), 1)

    def test_staff_needs_person_party(self):
        truck = factories.equipment(self.db)
        with self.assertRaises(GrantError):
            grants.create_staff(self.db, self.org.id, truck.id)

    def test_update_ignores_unset_fields(self):
        staff = grants.create_staff(self.db, self.org.id, self.person.id, position="Dispatcher")
        grants.update_staff(self.db, staff, self.org.id, position=None, can_approve_cafs=True)
        self.assertEqual(staff.position, "Dispatcher")
        self.assertTrue(staff.can_approve_cafs)


class TestPartyKinds(GrantsTestCase):
    def test_person_party_cannot_become_organization(self):
        party = factories.person(self.db, "solo")
        with self.assertRaises(PartyKindError):
            party.organization = Organization(name="Solo Freight")
        self.assertEqual(party.kind, "person")

    def test_organization_party_cannot_gain_person(self):
        org = factories.organization(self.db, "Acme")
        with self.assertRaises(PartyKindError):
            Person(first_name="Pat", last_name="Lee", party=org.party)


if __name__ == "__main__":
    unittest.main()
