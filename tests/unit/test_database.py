from sqlalchemy.pool import StaticPool

from visual_aids.core.database import create_local_engine, expand_sqlite_path


def test_expand_sqlite_path_creates_parent_directory(tmp_path):
  target = tmp_path / "nested" / "offline.db"

  url = expand_sqlite_path(f"sqlite+aiosqlite:///{target}")

  assert url == f"sqlite+aiosqlite:///{target}"
  assert target.parent.is_dir()


def test_expand_sqlite_path_expands_home(tmp_path, monkeypatch):
  monkeypatch.setenv("HOME", str(tmp_path))

  url = expand_sqlite_path("sqlite+aiosqlite:///~/.visual_aids/offline.db")

  assert url == f"sqlite+aiosqlite:///{tmp_path / '.visual_aids' / 'offline.db'}"
  assert (tmp_path / ".visual_aids").is_dir()


def test_memory_urls_are_left_alone_and_use_static_pool():
  url = "sqlite+aiosqlite:///:memory:"

  assert expand_sqlite_path(url) == url
  engine = create_local_engine(url)
  assert isinstance(engine.sync_engine.pool, StaticPool)
