import pytest

from folder_graph.core.exceptions import NotFoundError, ValidationError
from folder_graph.models.enums import EdgeKind, LifecycleState

from conftest import OTHER, OWNER


def titles(nodes):
    return [(node.title, titles(node.children)) for node in nodes]


@pytest.fixture
async def sample(service, make_folder):
    space = await make_folder("S")
    a = await make_folder("A", parent=space)
    b = await make_folder("B", parent=space)
    a1 = await make_folder("A1", parent=a)
    await service.bind_folder(b.id, a1.id, OWNER)
    return {"S": space, "A": a, "B": b, "A1": a1}


async def test_bound_folder_appears_under_each_parent(service, sample):
    tree = await service.get_folder_tree(OWNER)

    assert titles(tree) == [("S", [("A", [("A1", [])]), ("B", [("A1", [])])])]
    under_a = tree[0].children[0].children[0]
    under_b = tree[0].children[1].children[0]
    assert under_a.id == under_b.id
    assert under_a.kind is EdgeKind.PRIMARY
    assert under_b.kind is EdgeKind.BOUND
    assert under_b.path_ids == [sample["S"].id, sample["B"].id, sample["A1"].id]
    assert under_b.depth == 3


async def test_children_follow_user_positions(service, sample):
    s, a, b = sample["S"], sample["A"], sample["B"]
    await service.update_position(b.id, OWNER, 0, parent_old_id=s.id, parent_new_id=s.id)

    tree = await service.get_folder_tree(OWNER)
    assert [(n.title, n.index) for n in tree[0].children] == [("B", 0), ("A", 1)]

    # no positions of their own yet, edge order is used
    tree = await service.get_folder_tree(OTHER)
    assert [(n.title, n.index) for n in tree[0].children] == [("A", None), ("B", None)]


async def test_depth_limit(service, sample):
    tree = await service.get_folder_tree(OWNER, depth=1)
    assert titles(tree) == [("S", [])]

    tree = await service.get_folder_tree(OWNER, depth=2)
    assert titles(tree) == [("S", [("A", []), ("B", [])])]

    with pytest.raises(ValidationError):
        await service.get_folder_tree(OWNER, depth=0)


async def test_archived_folders_are_hidden_unless_requested(service, sample):
    await service.archive(sample["B"].id, OWNER)

    tree = await service.get_folder_tree(OWNER)
    assert titles(tree) == [("S", [("A", [("A1", [])])])]

    tree = await service.get_folder_tree(OWNER, show_archived=True)
    archived = tree[0].children[1]
    assert archived.title == "B"
    assert archived.state is LifecycleState.ARCHIVED
    # the bind was severed because A1 is still reachable through A
    assert archived.children == []


async def test_subtree_and_space_filter(service, make_folder, sample):
    other_space = await make_folder("T")

    tree = await service.get_folder_tree(OWNER, parent_folder_id=sample["A"].id)
    assert titles(tree) == [("A1", [])]
    assert tree[0].depth == 1

    tree = await service.get_folder_tree(OWNER, root_ids=[other_space.id])
    assert titles(tree) == [("T", [])]


async def test_allowed_ids_prune_whole_subtrees(service, sample):
    allowed = {sample["S"].id, sample["B"].id, sample["A1"].id}

    tree = await service.get_folder_tree(OWNER, allowed_ids=allowed)

    assert titles(tree) == [("S", [("B", [("A1", [])])])]


async def test_reads_hide_forbidden_folders(service, sample):
    allowed = {sample["S"].id, sample["A"].id}

    children = await service.get_children(sample["S"].id, allowed_ids=allowed)
    assert [f.title for f in children] == ["A"]

    with pytest.raises(NotFoundError):
        await service.get_folder(sample["B"].id, allowed_ids=allowed)

    relations = await service.get_parent_relations(sample["A1"].id)
    assert [(r.parent_folder_id, r.kind) for r in relations] == [
        (sample["A"].id, EdgeKind.PRIMARY),
        (sample["B"].id, EdgeKind.BOUND),
    ]
