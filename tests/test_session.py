"""
Tests for SessionManager.
"""

from pathlib import Path
from tempfile import TemporaryDirectory

from nbcards.cards import Card, CardCollection, CardOutput
from nbcards.session import SessionManager


class TestSessionManager:
    """Test cases for SessionManager."""

    def setup_method(self):
        """Set up a fresh session manager for each test."""
        self.temp_dir = TemporaryDirectory()
        self.session_manager = SessionManager(sessions_dir=Path(self.temp_dir.name))

    def teardown_method(self):
        """Clean up temp directory."""
        self.temp_dir.cleanup()

    def _collection(self) -> CardCollection:
        collection = CardCollection()
        collection.add(Card(
            id=collection.ids.next(),
            source_code="print(1)",
            outputs=[CardOutput(kind="stdout", payload="1\n")],
            jupyter_data={"cell_type": "code", "outputs": [{"output_type": "stream"}]},
        ))
        collection.add_custom_markdown("# notes")
        collection.rename(0, "First")
        return collection

    def test_save_and_load(self):
        path = self.session_manager.save_session(self._collection(), name="work")
        assert path.exists()

        restored = self.session_manager.load_session("work")
        assert len(restored) == 2
        assert restored[0].title == "First"
        assert restored[0].outputs == (CardOutput(kind="stdout", payload="1\n"),)
        assert restored[0].jupyter_data == {"cell_type": "code", "outputs": [{"output_type": "stream"}]}
        assert restored[1].is_custom_markdown

    def test_id_counter_restored(self):
        self.session_manager.save_session(self._collection())
        restored = self.session_manager.load_session()
        assert restored.add_custom_markdown("next").id == 2

    def test_missing_session_is_empty(self):
        collection = self.session_manager.load_session("nothing")
        assert len(collection) == 0
        assert collection.ids.peek == 0

    def test_reset_survives_save(self):
        collection = self._collection()
        collection.reset()
        self.session_manager.save_session(collection)
        restored = self.session_manager.load_session()
        assert len(restored) == 0
        assert restored.ids.peek == 0

    def test_list_sessions(self):
        self.session_manager.save_session(self._collection(), name="a")
        self.session_manager.save_session(CardCollection(), name="b")
        sessions = {s["name"]: s for s in self.session_manager.list_sessions()}
        assert sessions["a"]["card_count"] == 2
        assert sessions["b"]["card_count"] == 0

    def test_list_sessions_reports_corrupt_file(self):
        (Path(self.temp_dir.name) / "broken.json").write_text("{")
        sessions = self.session_manager.list_sessions()
        assert sessions[0]["name"] == "broken"
        assert "error" in sessions[0]

    def test_delete_session(self):
        self.session_manager.save_session(CardCollection(), name="gone")
        assert self.session_manager.delete_session("gone")
        assert not self.session_manager.delete_session("gone")

    def test_default_dir_from_env(self, nbcards_home):
        manager = SessionManager()
        assert manager.sessions_dir == nbcards_home / "sessions"
        assert manager.sessions_dir.is_dir()
