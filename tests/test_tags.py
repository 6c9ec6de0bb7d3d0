import pytest

from tagr.errors import InvalidTagNameError, ProtectedTagError, TagExistsError, TagNotFoundError
from tagr.models import Workspace
from tagr import tags as tag_ops


def _doc():
    return {
        "main": Workspace.from_dict({"tasks": [
            {"id": 1, "title": "a", "status": "done", "subtasks": [{"id": 1, "title": "s"}]},
            {"id": 2, "title": "b"},
        ]}),
        "feature": Workspace(),
    }


def test_list_tags():
    rows = tag_ops.list_tags(_doc(), current="feature")
    assert [r["name"] for r in rows] == ["main", "feature"]
    main = rows[0]
    assert (main["tasks"], main["completed"], main["subtasks"], main["current"]) == (2, 1, 1, False)
    assert rows[1]["current"] is True


def test_add_tag_and_copy():
    doc = _doc()
    tag_ops.add_tag(doc, "empty", description="scratch")
    assert doc["empty"].tasks == []
    assert doc["empty"].metadata.description == "scratch"

    copied = tag_ops.copy_tag(doc, "main", "snapshot")
    assert [t.id for t in copied.tasks] == [1, 2]
    copied.tasks[0].title = "changed"
    assert doc["main"].tasks[0].title == "a"


@pytest.mark.parametrize("name", ["", "has space", "slash/name", "ümlaut"])
def test_add_tag_rejects_bad_names(name):
    with pytest.raises(InvalidTagNameError):
        tag_ops.add_tag(_doc(), name)


def test_add_tag_errors():
    doc = _doc()
    with pytest.raises(TagExistsError):
        tag_ops.add_tag(doc, "feature")
    with pytest.raises(TagNotFoundError):
        tag_ops.add_tag(doc, "x", copy_from="missing")


def test_rename_tag_keeps_order():
    doc = _doc()
    doc["last"] = Workspace()
    tag_ops.rename_tag(doc, "feature", "feat-2")
    assert list(doc) == ["main", "feat-2", "last"]


def test_main_is_protected():
    doc = _doc()
    with pytest.raises(ProtectedTagError):
        tag_ops.rename_tag(doc, "main", "trunk")
    with pytest.raises(ProtectedTagError):
        tag_ops.delete_tag(doc, "main")


def test_delete_tag():
    doc = _doc()
    tag_ops.delete_tag(doc, "feature")
    assert list(doc) == ["main"]
    with pytest.raises(TagNotFoundError):
        tag_ops.delete_tag(doc, "feature")
