import unittest

import factories
from dotcompliance.core.hierarchy import expand_organization
from dotcompliance.models.models import IssueType, RoleKind
from dotcompliance.services import issues
from dotcompliance.services.party_graph import PartyGraph


class TestScopedIssues(unittest.TestCase):
    def setUp(self):
        self.db = factories.make_session()
        self.graph = PartyGraph(self.db)
        self.org = factories.organization(self.db, "Acme")
        self.loc = factories.location(self.db, self.org)
        self.driver = factories.person(self.db)
        factories.role(self.db, self.driver, RoleKind.DRIVER, self.org.id, self.loc.id)

        other = factories.organization(self.db, "Other")
        self.outsider = factories.person(self.db)
        factories.role(self.db, self.outsider, RoleKind.DRIVER, other.id)

    def tearDown(self):
        self.db.close()

    def test_party_placement(self):
        self.assertEqual(issues.party_placement(self.db, self.driver.id), (self.org.id, self.loc.id))
        self.assertEqual(issues.party_placement(self.db, self.org.party_id), (self.org.id, None))
        self.assertEqual(issues.party_placement(self.db, "nobody"), (None, None))

    def test_listing_limited_to_organization_members(self):
        issues.create_roadside_inspection(self.db, self.driver.id, "Level I")
        issues.create_roadside_inspection(self.db, self.outsider.id, "Level II")
        issues.create_accident(self.db, self.driver.id, "Rear-end", injuries=1)

        party_ids = expand_organization(self.graph, self.org.id)
        inspections = issues.list_roadside_inspections(self.db, party_ids)
        self.assertEqual([i.issue.title for i in inspections], ["Level I"])
        self.assertEqual(len(issues.list_accidents(self.db, party_ids)), 1)
        self.assertEqual(len(issues.list_issues(self.db, party_ids)), 2)
        self.assertEqual(len(issues.list_issues(self.db, party_ids, IssueType.ACCIDENT)), 1)

    def test_specialized_issue_detail(self):
        issue = issues.create_issue(self.db, self.driver.id, "training", "Hazmat refresher",
                                    training_type="hazmat")
        self.assertEqual(issues.issue_detail(issue)["training_type"], "hazmat")

    def test_inspections_use_their_own_creator(self):
        with self.assertRaises(ValueError):
            issues.create_issue(self.db, self.driver.id, IssueType.ROADSIDE_INSPECTION, "x")

    def test_organization_stats(self):
        issues.create_roadside_inspection(self.db, self.driver.id, "Level I")
        stats = issues.organization_stats(self.db, self.graph, self.org.id)
        self.assertEqual(stats["drivers"], 1)
        self.assertEqual(stats["equipment"], 0)
        self.assertEqual(stats["locations"], 1)
        self.assertEqual(stats["open_issues"], 1)
        self.assertEqual(stats["open_cafs"], 0)


if __name__ == "__main__":
    unittest.main()
