import pytest

from folder_graph.core.exceptions import ConflictError, FolderLoopError, NotFoundError, ValidationError
from folder_graph.db.transaction import UnitOfWork
from folder_graph.models import Folder
from folder_graph.models.enums import EdgeKind, FolderType
from folder_graph.services.relation_graph import RelationGraph

from conftest import OWNER


async def test_root_and_child_paths(service, make_folder, edge_between):
    space = await make_folder("S")
    folder = await make_folder("F", parent=space)

    root = await edge_between(None, space.id)
    assert root.path_ids == [space.id]
    assert root.path_str == ["S"]
    assert root.kind is EdgeKind.PRIMARY

    edge = await edge_between(space.id, folder.id)
    assert edge.path_ids == [space.id, folder.id]
    assert edge.path_str == ["S", "F"]


async def test_bind_extends_parent_path_and_keeps_primary(service, make_folder, edge_between):
    space = await make_folder("S")
    folder = await make_folder("F", parent=space)
    other = await make_folder("G", parent=space)

    bound = await service.bind_folder(other.id, folder.id, OWNER)

    assert bound.kind is EdgeKind.BOUND
    assert bound.path_ids == [space.id, other.id, folder.id]
    primary = await edge_between(space.id, folder.id)
    assert primary.path_ids == [space.id, folder.id]


async def test_self_edge_is_rejected(session_factory, make_folder):
    space = await make_folder("S")
    async with UnitOfWork(session_factory) as uow:
        graph = RelationGraph(uow.session)
        with pytest.raises(FolderLoopError):
            await graph.create_edge(space.id, space.id, EdgeKind.BOUND)


async def test_loop_error_is_both_validation_and_conflict(service, make_folder):
    space = await make_folder("S")
    folder = await make_folder("F", parent=space)

    with pytest.raises(ValidationError) as exc_info:
        await service.bind_folder(folder.id, folder.id, OWNER)
    assert isinstance(exc_info.value, ConflictError)
    assert exc_info.value.detail == "loop"


async def test_bind_under_own_descendant_is_rejected(service, make_folder, all_edges):
    space = await make_folder("S")
    a = await make_folder("A", parent=space)
    b = await make_folder("B", parent=a)
    c = await make_folder("C", parent=b)
    before = [(e.parent_folder_id, e.child_folder_id) for e in await all_edges()]

    with pytest.raises(FolderLoopError):
        await service.bind_folder(c.id, a.id, OWNER)

    assert [(e.parent_folder_id, e.child_folder_id) for e in await all_edges()] == before


async def test_loop_through_another_space_is_rejected(service, make_folder):
    s1 = await make_folder("S1")
    s2 = await make_folder("S2")
    a = await make_folder("A", parent=s1)
    x = await make_folder("X", parent=s2)
    y = await make_folder("Y", parent=x)

    # A's subtree now reaches Y through S2
    await service.bind_folder(a.id, x.id, OWNER)

    with pytest.raises(FolderLoopError):
        await service.bind_folder(y.id, a.id, OWNER)


async def test_binding_a_space_and_across_spaces_is_allowed(service, make_folder, edge_between):
    s1 = await make_folder("S1")
    s2 = await make_folder("S2")
    a = await make_folder("A", parent=s1)

    await service.bind_folder(a.id, s2.id, OWNER)

    edge = await edge_between(a.id, s2.id)
    assert edge.path_ids == [s1.id, a.id, s2.id]
    assert (await edge_between(None, s2.id)) is not None


async def test_duplicate_edge_is_a_conflict(service, make_folder):
    space = await make_folder("S")
    folder = await make_folder("F", parent=space)
    other = await make_folder("G", parent=space)
    await service.bind_folder(other.id, folder.id, OWNER)

    with pytest.raises(ConflictError):
        await service.bind_folder(other.id, folder.id, OWNER)
    with pytest.raises(ConflictError):
        await service.bind_folder(space.id, folder.id, OWNER)


async def test_parent_without_placement_is_rejected(session_factory, make_folder):
    space = await make_folder("S")
    async with UnitOfWork(session_factory) as uow:
        stray = Folder(user_id=OWNER, title="stray", folder_type=FolderType.FOLDER)
        uow.session.add(stray)
        await uow.session.flush()
        graph = RelationGraph(uow.session)
        with pytest.raises(ValidationError):
            await graph.create_edge(stray.id, space.id, EdgeKind.BOUND)
        with pytest.raises(NotFoundError):
            await graph.create_edge(space.id, 999999)
        await uow.session.rollback()


async def test_unbinding_only_parent_reanchors_under_space(service, make_folder, edge_between):
    space = await make_folder("S")
    a = await make_folder("A", parent=space)
    folder = await make_folder("F", parent=a)
    other = await make_folder("G", parent=space)
    await service.bind_folder(other.id, folder.id, OWNER)

    remaining = await service.unbind_folder(a.id, folder.id, OWNER)
    assert [(e.parent_folder_id, e.kind) for e in remaining] == [(other.id, EdgeKind.BOUND)]

    remaining = await service.unbind_folder(other.id, folder.id, OWNER)
    assert len(remaining) == 1
    assert remaining[0].parent_folder_id == space.id
    assert remaining[0].kind is EdgeKind.PRIMARY

    anchor = await edge_between(space.id, folder.id)
    assert anchor.path_ids == [space.id, folder.id]


async def test_unbind_of_missing_edge_is_not_found(service, make_folder):
    space = await make_folder("S")
    a = await make_folder("A", parent=space)
    b = await make_folder("B", parent=space)

    with pytest.raises(NotFoundError):
        await service.unbind_folder(a.id, b.id, OWNER)


async def test_space_resolution_prefers_nearest_live_space(service, make_folder):
    s1 = await make_folder("S1")
    s2 = await make_folder("S2")
    a = await make_folder("A", parent=s1)
    b = await make_folder("B", parent=a)
    await service.bind_folder(s2.id, b.id, OWNER)

    assert await service.get_space_id(b.id) == s2.id
    assert await service.get_space_id(s1.id) == s1.id

    await service.archive(s2.id, OWNER)
    assert await service.get_space_id(b.id) == s1.id
    assert await service.get_space_id(b.id, include_inactive=True) == s1.id


async def test_unique_pair_constraint_reports_conflict(session_factory, make_folder, monkeypatch):
    space = await make_folder("S")
    folder = await make_folder("F", parent=space)

    async def edge_not_seen_yet(parent_id, child_id):
        return None

    with pytest.raises(ConflictError):
        async with UnitOfWork(session_factory) as uow:
            graph = RelationGraph(uow.session)
            # another writer inserted the same pair after the lookup
            monkeypatch.setattr(graph, "get_edge", edge_not_seen_yet)
            await graph.create_edge(space.id, folder.id, EdgeKind.BOUND)


async def test_unbind_requires_access_to_the_parent(service, make_folder, edge_between):
    space = await make_folder("S")
    a = await make_folder("A", parent=space)
    g = await make_folder("G", parent=space)
    await service.bind_folder(g.id, a.id, OWNER)

    with pytest.raises(NotFoundError):
        await service.unbind_folder(g.id, a.id, OWNER, allowed_ids={space.id, a.id})

    assert await edge_between(g.id, a.id) is not None


async def test_bind_of_missing_folder_is_not_found(service, make_folder):
    space = await make_folder("S")

    with pytest.raises(NotFoundError):
        await service.bind_folder(space.id, 424242, OWNER)
    with pytest.raises(NotFoundError):
        await service.bind_folder(424242, space.id, OWNER)
