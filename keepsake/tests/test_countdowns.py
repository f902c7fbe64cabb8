import unittest
from datetime import date, timedelta
from unittest.mock import patch

from pydantic import ValidationError

from keepsake.countdowns import CountdownService, derive_countdown, infer_direction
from keepsake.db import InMemoryDbClient
from keepsake.errors import NotFound, ValidationFailed
from keepsake.schemas import CountdownCreate, CountdownUpdate
from keepsake.types import CountdownStatus

TODAY = date(2024, 6, 15)


class DeriveCountdownTests(unittest.TestCase):
    def _view(self, offset_days: int, direction: str):
        return derive_countdown(TODAY + timedelta(days=offset_days), direction, TODAY)

    def test_countup_today_counts_as_day_one(self):
        view = self._view(0, "countup")
        self.assertEqual(view.days, -1)
        self.assertEqual(view.absolute_days, 1)
        self.assertEqual(view.status, CountdownStatus.RECENT)

    def test_countdown_today(self):
        view = self._view(0, "countdown")
        self.assertEqual(view.days, 0)
        self.assertEqual(view.absolute_days, 0)
        self.assertEqual(view.status, CountdownStatus.TODAY)

    def test_countdown_status_bands(self):
        view = self._view(10, "countdown")
        self.assertEqual(view.days, 10)
        self.assertEqual(view.status, CountdownStatus.SOON)
        self.assertEqual(self._view(5, "countdown").status, CountdownStatus.URGENT)
        self.assertEqual(self._view(7, "countdown").status, CountdownStatus.URGENT)
        self.assertEqual(self._view(30, "countdown").status, CountdownStatus.SOON)
        self.assertEqual(self._view(40, "countdown").status, CountdownStatus.UPCOMING)
        # A countdown whose date has passed still reads as "today".
        self.assertEqual(self._view(-3, "countdown").status, CountdownStatus.TODAY)

    def test_countup_status_bands(self):
        self.assertEqual(self._view(-400, "countup").status, CountdownStatus.LONG_TIME)
        self.assertEqual(self._view(-40, "countup").status, CountdownStatus.MONTH)
        self.assertEqual(self._view(-10, "countup").status, CountdownStatus.RECENT)

        view = self._view(-10, "countup")
        self.assertEqual(view.days, -11)
        self.assertEqual(view.absolute_days, 11)

    def test_formatted_target_date(self):
        view = derive_countdown(date(2023, 2, 14), "countup", TODAY)
        self.assertEqual(view.formatted_target_date, "2023-02-14")
        self.assertEqual(
            view.as_dict(),
            {
                "days": view.days,
                "absoluteDays": view.absolute_days,
                "status": view.status.value,
                "formattedTargetDate": "2023-02-14",
            },
        )

    def test_infer_direction(self):
        self.assertEqual(infer_direction(TODAY - timedelta(days=1), TODAY).value, "countup")
        self.assertEqual(infer_direction(TODAY, TODAY).value, "countdown")
        self.assertEqual(infer_direction(TODAY + timedelta(days=3), TODAY).value, "countdown")


class CountdownServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.service = CountdownService(self.db, today=lambda: TODAY)

    def test_recurring_without_type_is_rejected(self):
        with self.assertRaises(ValidationError):
            CountdownCreate(title="Anniversary", targetDate="2020-05-20", isRecurring=True)

    def test_non_recurring_without_type_is_accepted(self):
        payload = CountdownCreate(title="Trip", targetDate="2024-07-01", isRecurring=False)
        created = self.service.create("user-1", payload)
        self.assertEqual(created["direction"], "countdown")
        self.assertEqual(created["days"], 16)
        self.assertEqual(created["status"], "soon")
        self.assertIsNone(created["recurringType"])

    def test_direction_inferred_from_past_date(self):
        payload = CountdownCreate(title="First date", targetDate="2024-06-05T18:30:00Z")
        created = self.service.create("user-1", payload)
        self.assertEqual(created["direction"], "countup")
        self.assertEqual(created["targetDate"], "2024-06-05")
        self.assertEqual(created["days"], -11)

    def test_derived_fields_are_not_stored(self):
        payload = CountdownCreate(title="Trip", targetDate="2024-07-01")
        created = self.service.create("user-1", payload)
        stored = self.db.get_countdown("user-1", created["id"])
        self.assertNotIn("days", stored.as_dict())
        self.assertNotIn("status", stored.as_dict())

    def test_update_revalidates_recurrence(self):
        created = self.service.create(
            "user-1", CountdownCreate(title="Trip", targetDate="2024-07-01")
        )
        with self.assertRaises(ValidationFailed):
            self.service.update("user-1", created["id"], CountdownUpdate(isRecurring=True))

        updated = self.service.update(
            "user-1",
            created["id"],
            CountdownUpdate(isRecurring=True, recurringType="yearly"),
        )
        self.assertTrue(updated["isRecurring"])
        self.assertEqual(updated["recurringType"], "yearly")

        cleared = self.service.update(
            "user-1", created["id"], CountdownUpdate(isRecurring=False)
        )
        self.assertFalse(cleared["isRecurring"])
        self.assertIsNone(cleared["recurringType"])

    def test_list_filters_and_sorts_by_target_date(self):
        self.service.create(
            "user-1", CountdownCreate(title="Later", targetDate="2024-12-01", type="event")
        )
        self.service.create(
            "user-1", CountdownCreate(title="Sooner", targetDate="2024-06-20", type="event")
        )
        self.service.create(
            "user-1", CountdownCreate(title="Met", targetDate="2020-01-01", type="anniversary")
        )
        self.service.create(
            "user-2", CountdownCreate(title="Other user", targetDate="2024-06-16")
        )

        titles = [c["title"] for c in self.service.list("user-1")]
        self.assertEqual(titles, ["Met", "Sooner", "Later"])

        events = self.service.list("user-1", type="event")
        self.assertEqual([c["title"] for c in events], ["Sooner", "Later"])

        past = self.service.list("user-1", direction="countup")
        self.assertEqual([c["title"] for c in past], ["Met"])

    def test_other_users_countdowns_are_not_found(self):
        created = self.service.create(
            "user-1", CountdownCreate(title="Trip", targetDate="2024-07-01")
        )
        with self.assertRaises(NotFound):
            self.service.get("user-2", created["id"])
        with self.assertRaises(NotFound):
            self.service.delete("user-2", created["id"])

    @patch("keepsake.countdowns.utc_today")
    def test_today_defaults_to_utc_date(self, mock_today):
        mock_today.return_value = TODAY
        service = CountdownService(self.db)
        created = service.create(
            "user-1", CountdownCreate(title="Trip", targetDate="2024-06-25")
        )
        self.assertEqual(created["days"], 10)


if __name__ == "__main__":
    unittest.main()
