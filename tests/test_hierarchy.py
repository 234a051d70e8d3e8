import unittest

import factories
from dotcompliance.core.errors import OrganizationNotFound
from dotcompliance.core.hierarchy import expand_organization
from dotcompliance.models.models import RoleKind
from dotcompliance.services.party_graph import PartyGraph


class TestExpandOrganization(unittest.TestCase):
    def setUp(self):
        self.db = factories.make_session()
        self.graph = PartyGraph(self.db)

    def tearDown(self):
        self.db.close()

    def test_organization_without_members(self):
        org = factories.organization(self.db)
        self.assertEqual(expand_organization(self.graph, org.id), frozenset({org.party_id}))

    def test_drivers_and_equipment_are_members(self):
        org = factories.organization(self.db)
        driver = factories.person(self.db)
        truck = factories.equipment(self.db)
        factories.role(self.db, driver, RoleKind.DRIVER, org.id)
        factories.role(self.db, truck, RoleKind.EQUIPMENT, org.id)

        self.assertEqual(
            expand_organization(self.graph, org.id),
            frozenset({org.party_id, driver.id, truck.id}),
        )

    def test_inactive_member_excluded(self):
        org = factories.organization(self.db)
        driver = factories.person(self.db)
        factories.role(self.db, driver, RoleKind.DRIVER, org.id, is_active=False)

        self.assertEqual(expand_organization(self.graph, org.id), frozenset({org.party_id}))

    def test_managing_organization_party_is_not_a_member(self):
        master = factories.organization(self.db, "Master Co", owner="owner")
        child = factories.organization(self.db, "Child Co")
        factories.role(self.db, master.party, RoleKind.MASTER, child.id)

        self.assertEqual(expand_organization(self.graph, child.id), frozenset({child.party_id}))

    def test_members_of_other_organizations_excluded(self):
        a = factories.organization(self.db, "A")
        b = factories.organization(self.db, "B")
        driver = factories.person(self.db)
        factories.role(self.db, driver, RoleKind.DRIVER, b.id)

        self.assertNotIn(driver.id, expand_organization(self.graph, a.id))

    def test_missing_organization(self):
        with self.assertRaises(OrganizationNotFound):
            expand_organization(self.graph, "does-not-exist")

    def test_reflects_role_changes_between_calls(self):
        org = factories.organization(self.db)
        driver = factories.person(self.db)
        before = expand_organization(self.graph, org.id)
        factories.role(self.db, driver, RoleKind.DRIVER, org.id)
        after = expand_organization(self.graph, org.id)

        self.assertNotIn(driver.id, before)
        self.assertIn(driver.id, after)


if __name__ == "__main__":
    unittest.main()
