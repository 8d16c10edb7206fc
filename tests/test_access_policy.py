import unittest

from bsi_telemetry.services.access_policy import AuthorizationPolicy, PermissionDenied


class AuthorizationPolicyTests(unittest.TestCase):
    def setUp(self):
        self.policy = AuthorizationPolicy()

    def test_user_management_is_admin_only(self):
        for action in ("create", "update", "delete", "set_role"):
            self.assertTrue(self.policy.allows("admin", action, "users"))
            self.assertFalse(self.policy.allows("manager", action, "users"))
            self.assertFalse(self.policy.allows("viewer", action, "users"))

    def test_managers_can_list_users_and_mappings(self):
        self.assertTrue(self.policy.allows("manager", "list", "users"))
        self.assertTrue(self.policy.allows("manager", "list", "metric_mappings"))
        self.assertFalse(self.policy.allows("manager", "create", "metric_mappings"))
        self.assertFalse(self.policy.allows("viewer", "list", "metric_mappings"))

    def test_everyone_reads_telemetry(self):
        for role in ("admin", "manager", "viewer"):
            self.assertTrue(self.policy.allows(role, "read", "telemetry"))
            self.assertTrue(self.policy.allows(role, "read", "reports"))
            self.assertTrue(self.policy.allows(role, "read", "nodes"))

    def test_self_service(self):
        self.assertFalse(self.policy.allows("viewer", "read", "users"))
        self.assertTrue(self.policy.allows("viewer", "read", "users", is_self=True))
        self.assertTrue(self.policy.allows("viewer", "update", "users", is_self=True))
        self.assertTrue(self.policy.allows("viewer", "read", "node_assignments", is_self=True))
        # self never unlocks deletion or role changes
        self.assertFalse(self.policy.allows("viewer", "delete", "users", is_self=True))
        self.assertFalse(self.policy.allows("viewer", "set_role", "users", is_self=True))

    def test_unknown_role_and_pair_denied(self):
        self.assertFalse(self.policy.allows("root", "read", "telemetry"))
        self.assertFalse(self.policy.allows("", "read", "telemetry"))
        self.assertFalse(self.policy.allows("admin", "launch", "rockets"))

    def test_role_is_case_insensitive(self):
        self.assertTrue(self.policy.allows(" Admin ", "delete", "users"))

    def test_check_raises(self):
        self.policy.check("admin", "delete", "users")
        with self.assertRaises(PermissionDenied) as ctx:
            self.policy.check("viewer", "delete", "users")
        self.assertEqual(ctx.exception.role, "viewer")

    def test_roles_for(self):
        self.assertEqual(list(self.policy.roles_for("list", "users")), ["admin", "manager"])
        self.assertEqual(list(self.policy.roles_for("nope", "nothing")), [])
