import unittest
from datetime import date, datetime, timedelta, timezone

from keepsake.db import (
    AlbumRecord,
    CountdownRecord,
    DiaryQuery,
    DiaryRecord,
    PhotoRecord,
    SqlDbClient,
    UserRecord,
    new_id,
)


def _photo(user_id: str, album_id: str, name: str) -> PhotoRecord:
    return PhotoRecord(
        id=new_id(),
        user_id=user_id,
        album_id=album_id,
        filename=name,
        original_name=name,
        path=name,
        url=f"/uploads/{name}",
        thumbnail_url=f"/uploads/thumbnails/{name}",
        size=1234,
        mimetype="image/jpeg",
        tags=["trip"],
        exif={"camera": "Test Cam"},
    )


class SqlDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL client logic.
    """

    def setUp(self):
        self.db = SqlDbClient("sqlite+pysqlite:///:memory:")
        self.user_id = new_id()

    def tearDown(self):
        self.db.close()

    def _diary(self, title: str, days_ago: int = 0, **kwargs) -> DiaryRecord:
        record = DiaryRecord(
            id=new_id(),
            user_id=kwargs.pop("user_id", self.user_id),
            title=title,
            content=kwargs.pop("content", "a quiet evening walk"),
            category=kwargs.pop("category", "daily"),
            date=datetime(2024, 6, 15, 12, tzinfo=timezone.utc) - timedelta(days=days_ago),
            **kwargs,
        )
        return self.db.create_diary(record)

    def test_user_roundtrip_and_conflicts(self):
        user = self.db.create_user(
            UserRecord(id=self.user_id, username="alex", email="alex@example.com", password_hash="x")
        )
        self.assertEqual(self.db.get_user(user.id).username, "alex")
        self.assertEqual(self.db.get_user_by_email("alex@example.com").id, user.id)
        self.assertIsNotNone(self.db.find_user_conflict("alex", "other@example.com"))
        self.assertIsNone(
            self.db.find_user_conflict("alex", "alex@example.com", exclude_id=user.id)
        )

        updated = self.db.update_user(user.id, {"username": "sam"})
        self.assertEqual(updated.username, "sam")
        self.assertIsNotNone(updated.updated_at.tzinfo)

    def test_query_diaries_filters_and_paginates(self):
        for i in range(25):
            self._diary(f"entry {i}", days_ago=i)
        records, total = self.db.query_diaries(self.user_id, DiaryQuery(page=2, limit=10))
        self.assertEqual(total, 25)
        self.assertEqual(len(records), 10)
        self.assertEqual(records[0].title, "entry 10")

        start = datetime(2024, 6, 10, tzinfo=timezone.utc)
        records, total = self.db.query_diaries(self.user_id, DiaryQuery(start=start))
        self.assertEqual(total, 6)

    def test_search_matches_title_content_and_tags_literally(self):
        self._diary("Beach day", content="sun and sand")
        self._diary("Dinner", content="pasta at 50% off", tags=["Anniversary"])
        self._diary("Other", user_id=new_id(), content="beach for someone else")

        _, total = self.db.query_diaries(self.user_id, DiaryQuery(search="BEACH"))
        self.assertEqual(total, 1)
        records, _ = self.db.query_diaries(self.user_id, DiaryQuery(search="anniv"))
        self.assertEqual([r.title for r in records], ["Dinner"])
        records, _ = self.db.query_diaries(self.user_id, DiaryQuery(search="50%"))
        self.assertEqual([r.title for r in records], ["Dinner"])
        _, total = self.db.query_diaries(self.user_id, DiaryQuery(search="5_%"))
        self.assertEqual(total, 0)

    def test_tags_follow_updates_and_deletes(self):
        diary = self._diary("Tagged", tags=["b", "a"])
        self._diary("Also", category="travel", tags=["c"])
        self.assertEqual(self.db.diary_tags(self.user_id), ["a", "b", "c"])
        self.assertEqual(self.db.diary_categories(self.user_id), ["daily", "travel"])

        self.db.update_diary(self.user_id, diary.id, {"tags": ["z"]})
        self.assertEqual(self.db.diary_tags(self.user_id), ["c", "z"])

        self.assertTrue(self.db.delete_diary(self.user_id, diary.id))
        self.assertEqual(self.db.diary_tags(self.user_id), ["c"])
        self.assertFalse(self.db.delete_diary(self.user_id, diary.id))

    def test_records_are_scoped_to_owner(self):
        diary = self._diary("Mine")
        self.assertIsNone(self.db.get_diary(new_id(), diary.id))
        self.assertIsNone(self.db.update_diary(new_id(), diary.id, {"title": "x"}))
        self.assertFalse(self.db.delete_diary(new_id(), diary.id))

    def test_remove_photos_from_diaries(self):
        first = self._diary("First", attached_photos=["p1", "p2"])
        second = self._diary("Second", attached_photos=["p3"])
        other = self._diary("Theirs", user_id=new_id(), attached_photos=["p1"])

        self.assertEqual(self.db.remove_photos_from_diaries(self.user_id, ["p1", "p3"]), 2)
        self.assertEqual(self.db.get_diary(self.user_id, first.id).attached_photos, ["p2"])
        self.assertEqual(self.db.get_diary(self.user_id, second.id).attached_photos, [])
        self.assertEqual(self.db.get_diary(other.user_id, other.id).attached_photos, ["p1"])
        self.assertEqual(self.db.remove_photos_from_diaries(self.user_id, ["p1"]), 0)

    def test_default_album_and_cover_cleanup(self):
        first = self.db.create_album(
            AlbumRecord(id=new_id(), user_id=self.user_id, name="First", is_default=True)
        )
        second = self.db.create_album(
            AlbumRecord(id=new_id(), user_id=self.user_id, name="Second", is_default=True)
        )
        cleared = self.db.clear_default_albums(self.user_id, except_id=second.id)
        self.assertEqual(cleared, 1)
        self.assertEqual(self.db.get_default_album(self.user_id).id, second.id)
        self.assertFalse(self.db.get_album(self.user_id, first.id).is_default)

        photo = self.db.create_photo(_photo(self.user_id, second.id, "a.jpg"))
        self.db.update_album(self.user_id, second.id, {"cover_photo": photo.id})
        self.assertEqual(self.db.clear_cover_photo(self.user_id, photo.id), 1)
        self.assertEqual(self.db.get_album(self.user_id, second.id).cover_photo, "")

    def test_photos_by_album(self):
        album = self.db.create_album(AlbumRecord(id=new_id(), user_id=self.user_id, name="Trip"))
        other = self.db.create_album(AlbumRecord(id=new_id(), user_id=self.user_id, name="Home"))
        for i in range(3):
            self.db.create_photo(_photo(self.user_id, album.id, f"{i}.jpg"))
        kept = self.db.create_photo(_photo(self.user_id, other.id, "home.jpg"))

        self.assertEqual(
            self.db.count_photos_by_album(self.user_id), {album.id: 3, other.id: 1}
        )
        records, total = self.db.query_photos(self.user_id, album.id, page=1, limit=2)
        self.assertEqual(total, 3)
        self.assertEqual(len(records), 2)
        self.assertEqual(records[0].exif, {"camera": "Test Cam"})

        fetched = self.db.get_photos(self.user_id, [kept.id, "missing"])
        self.assertEqual([p.id for p in fetched], [kept.id])

        self.assertEqual(self.db.delete_photos_in_album(self.user_id, album.id), 3)
        self.assertEqual(len(self.db.list_photos(self.user_id)), 1)

    def test_countdowns_filter_and_sort(self):
        for title, target, kind, direction in [
            ("Later", date(2025, 1, 1), "event", "countdown"),
            ("Met", date(2020, 2, 14), "anniversary", "countup"),
            ("Sooner", date(2024, 7, 1), "event", "countdown"),
        ]:
            self.db.create_countdown(
                CountdownRecord(
                    id=new_id(),
                    user_id=self.user_id,
                    title=title,
                    target_date=target,
                    type=kind,
                    direction=direction,
                )
            )
        titles = [c.title for c in self.db.list_countdowns(self.user_id)]
        self.assertEqual(titles, ["Met", "Sooner", "Later"])
        events = self.db.list_countdowns(self.user_id, type="event")
        self.assertEqual([c.title for c in events], ["Sooner", "Later"])
        self.assertEqual(events[0].target_date, date(2024, 7, 1))

    def test_ping(self):
        self.db.ping()


if __name__ == "__main__":
    unittest.main()
