import pytest

from codegrade.services.workspace import Workspace, new_job_id, workspace_scope


def test_job_ids_are_unique():
    ids = {new_job_id() for _ in range(200)}
    assert len(ids) == 200


def test_allocate_creates_job_directory(tmp_path):
    workspace = Workspace.allocate(tmp_path / "scratch")
    assert workspace.directory.is_dir()
    assert workspace.directory.parent == tmp_path / "scratch"
    assert workspace.directory.name == f"job_{workspace.job_id}"


def test_concurrent_workspaces_do_not_share_directories(tmp_path):
    first = Workspace.allocate(tmp_path)
    second = Workspace.allocate(tmp_path)
    assert first.directory != second.directory


def test_allocate_rejects_existing_job_id(tmp_path):
    Workspace.allocate(tmp_path, job_id="same")
    with pytest.raises(FileExistsError):
        Workspace.allocate(tmp_path, job_id="same")


def test_write_source_and_cleanup(tmp_path):
    workspace = Workspace.allocate(tmp_path)
    source = workspace.write_source("main.py", "print('x')\n")
    binary = workspace.path("main.bin")
    binary.write_bytes(b"\x00")
    workspace.track([binary])

    assert source.read_text(encoding="utf-8") == "print('x')\n"
    assert source.parent == workspace.directory

    assert workspace.cleanup() is True
    assert not source.exists()
    assert not binary.exists()
    assert not workspace.directory.exists()
    # second call is a no-op
    assert workspace.cleanup() is True


def test_scope_cleans_up_on_exception(tmp_path):
    with pytest.raises(RuntimeError):
        with workspace_scope(tmp_path) as workspace:
            workspace.write_source("a.txt", "data")
            raise RuntimeError("boom")
    assert list(tmp_path.iterdir()) == []
