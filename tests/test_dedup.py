import unittest


class TestRecentIds(unittest.TestCase):
    def test_add_reports_duplicates(self) -> None:
        from panelink.kernel.dedup import RecentIds

        ids = RecentIds(3)
        self.assertTrue(ids.add("$a"))
        self.assertFalse(ids.add("$a"))
        self.assertIn("$a", ids)
        self.assertEqual(len(ids), 1)

    def test_bounded_with_oldest_evicted_first(self) -> None:
        from panelink.kernel.dedup import RecentIds

        ids = RecentIds()
        for i in range(1500):
            ids.add(f"$e{i}")
        self.assertEqual(len(ids), 1000)
        self.assertNotIn("$e0", ids)
        self.assertNotIn("$e499", ids)
        self.assertIn("$e500", ids)
        self.assertIn("$e1499", ids)

        # An evicted id is new again.
        self.assertTrue(ids.add("$e0"))
        self.assertEqual(len(ids), 1000)
        self.assertNotIn("$e500", ids)

    def test_rejects_non_positive_capacity(self) -> None:
        from panelink.kernel.dedup import RecentIds

        with self.assertRaises(ValueError):
            RecentIds(0)


if __name__ == "__main__":
    unittest.main()
