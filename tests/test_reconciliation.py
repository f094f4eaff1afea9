import pytest


@pytest.fixture()
def infer(app):
    from app.services.reconciliation import infer_from_key
    return infer_from_key


class TestInferFromKey:
    def test_full_layout(self, infer):
        meta = infer("uploads/CSC-301/42/0123456789abcdef0123456789abcdef_Operating_Systems_Mid-term_2019.pdf")
        assert meta.course_code == "CSC 301"
        assert meta.contributor_id == 42
        assert meta.file_name == "Operating_Systems_Mid-term_2019.pdf"
        assert meta.title == "Operating Systems Mid term 2019"
        assert meta.resource_type == "question"
        assert meta.year == "2019"

    def test_notes_default(self, infer):
        meta = infer("uploads/BIO-101/7/lecture-notes-week-3.docx")
        assert meta.resource_type == "note"
        assert meta.year is None
        assert meta.file_name == "lecture-notes-week-3.docx"

    @pytest.mark.parametrize("name", ["quiz1.pdf", "PQ_2020.pdf", "class test.pdf", "exam-questions.doc"])
    def test_question_hints(self, infer, name):
        assert infer(f"uploads/X-1/1/{name}").resource_type == "question"

    @pytest.mark.parametrize("name", ["latest-notes.pdf", "contest-summary.pdf", "attestation.pdf"])
    def test_words_containing_test_are_notes(self, infer, name):
        assert infer(f"uploads/X-1/1/{name}").resource_type == "note"

    @pytest.mark.parametrize("name", ["worked_examples.pdf", "Example-solutions.pdf"])
    def test_example_is_not_an_exam(self, infer, name):
        assert infer(f"uploads/X-1/1/{name}").resource_type == "note"

    @pytest.mark.parametrize("segment", ["²", "١٢", "+7", " 7"])
    def test_user_segment_must_be_ascii_digits(self, infer, segment):
        meta = infer(f"uploads/CS-201/{segment}/notes.pdf")
        assert meta.course_code == "CS 201"
        assert meta.contributor_id is None

    def test_non_numeric_user_segment(self, infer):
        meta = infer("uploads/CS-201/someone/file.pdf")
        assert meta.course_code == "CS 201"
        assert meta.contributor_id is None

    def test_flat_key(self, infer):
        meta = infer("uploads/random.pdf")
        assert meta.course_code is None
        assert meta.contributor_id is None
        assert meta.title == "random"

    def test_year_needs_four_digits(self, infer):
        assert infer("uploads/A-1/1/notes_120245.pdf").year is None
        assert infer("uploads/A-1/1/notes_1999_rev.pdf").year == "1999"

    def test_custom_prefix(self, infer):
        meta = infer("files/ECO-210/3/demand.pdf", prefix="files/")
        assert meta.course_code == "ECO 210"
        assert meta.contributor_id == 3


class TestFilterOrphans:
    def _orphans(self):
        from app.services.reconciliation import InferredMetadata, Orphan
        from app.services.storage import StoredObject

        return [
            Orphan(StoredObject("uploads/CS-201/1/a.pdf", 1),
                   InferredMetadata("a.pdf", "Algorithms", "note", "CS 201", None, 1), "Ann"),
            Orphan(StoredObject("uploads/MTH-101/2/b.pdf", 1),
                   InferredMetadata("b.pdf", "Calculus", "note", "MTH 101", None, 2), "Ben"),
        ]

    def test_search_matches_title_key_and_contributor(self, app):
        from app.services.reconciliation import filter_orphans

        orphans = self._orphans()
        assert len(filter_orphans(orphans, search="calc")) == 1
        assert len(filter_orphans(orphans, search="mth-101")) == 1
        assert len(filter_orphans(orphans, search="ann")) == 1
        assert len(filter_orphans(orphans, search="  ")) == 2

    def test_course_and_contributor(self, app):
        from app.services.reconciliation import filter_orphans

        orphans = self._orphans()
        assert [o.inferred.title for o in filter_orphans(orphans, course_code="cs-201")] == ["Algorithms"]
        assert [o.inferred.title for o in filter_orphans(orphans, contributor_id=2)] == ["Calculus"]
        assert filter_orphans(orphans, course_code="CS 201", contributor_id=2) == []


def test_find_orphans_walks_every_page(app, db_session, tmp_path):
    from app.services.reconciliation import find_orphans
    from app.services.storage import LocalStorage

    storage = LocalStorage(tmp_path, page_size=2)
    for i in range(5):
        storage.put(f"uploads/PAGE-1/0/file{i}.pdf", b"x")
    storage.put("elsewhere/not-an-upload.pdf", b"x")

    orphans = find_orphans(db_session, storage)
    assert sorted(o.object.key for o in orphans) == [f"uploads/PAGE-1/0/file{i}.pdf" for i in range(5)]


def test_find_orphans_lists_odd_keys(app, db_session, tmp_path):
    from app.services.reconciliation import find_orphans
    from app.services.storage import LocalStorage

    storage = LocalStorage(tmp_path)
    storage.put("uploads/CS-201/²/notes.pdf", b"x")

    orphans = find_orphans(db_session, storage)
    assert [o.object.key for o in orphans] == ["uploads/CS-201/²/notes.pdf"]
    assert orphans[0].inferred.contributor_id is None


def test_orphan_report_job(app, monkeypatch, tmp_path):
    import app.jobs.maintenance as maintenance
    from app.services.storage import LocalStorage

    storage = LocalStorage(tmp_path)
    storage.put("uploads/JOB-1/0/left-behind.pdf", b"x")
    monkeypatch.setattr(maintenance, "get_storage", lambda: storage)

    assert maintenance.report_orphaned_uploads() == 1


def test_token_blacklist_cleanup_job(app, db_session):
    from datetime import datetime, timedelta, timezone

    from app.jobs.maintenance import cleanup_token_blacklist
    from app.models.token_blacklist import TokenBlacklist

    db_session.add(TokenBlacklist(jti="expired-jti", expires_at=datetime.now(timezone.utc) - timedelta(days=1)))
    db_session.add(TokenBlacklist(jti="live-jti", expires_at=datetime.now(timezone.utc) + timedelta(days=1)))
    db_session.commit()

    assert cleanup_token_blacklist() >= 1
    db_session.expire_all()
    remaining = {t.jti for t in db_session.query(TokenBlacklist).all()}
    assert "expired-jti" not in remaining
    assert "live-jti" in remaining
