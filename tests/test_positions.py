import pytest

from folder_graph.core.exceptions import ConflictError, FolderLoopError, NotFoundError, ValidationError
from folder_graph.db.transaction import UnitOfWork
from folder_graph.models.enums import FolderType
from folder_graph.services.positions import PositionManager

from conftest import OTHER, OWNER


async def order(service, parent_id, user_id=OWNER):
    return [child_id for child_id, _ in await service.get_sibling_positions(parent_id, user_id)]


async def assert_dense(service, parent_id, user_id=OWNER):
    indexes = [index for _, index in await service.get_sibling_positions(parent_id, user_id)]
    assert indexes == list(range(len(indexes)))


async def test_created_folders_are_appended(service, make_folder):
    space = await make_folder("S")
    a = await make_folder("A", parent=space)
    b = await make_folder("B", parent=space)
    c = await make_folder("C", parent=space)

    assert await order(service, space.id) == [a.id, b.id, c.id]
    await assert_dense(service, space.id)


async def test_reorder_within_parent(service, make_folder):
    space = await make_folder("S")
    a, b, c, d = [await make_folder(t, parent=space) for t in "ABCD"]

    result = await service.update_position(d.id, OWNER, 0, parent_old_id=space.id, parent_new_id=space.id)

    assert [r["folder_id"] for r in result] == [d.id, a.id, b.id, c.id]
    assert [r["index"] for r in result] == [0, 1, 2, 3]

    await service.update_position(d.id, OWNER, 99, parent_old_id=space.id, parent_new_id=space.id)
    assert await order(service, space.id) == [a.id, b.id, c.id, d.id]

    await service.update_position(a.id, OWNER, 2, parent_old_id=space.id, parent_new_id=space.id)
    assert await order(service, space.id) == [b.id, c.id, a.id, d.id]
    await assert_dense(service, space.id)


async def test_move_to_other_parent_keeps_both_sides_dense(service, make_folder, edge_between):
    space = await make_folder("S")
    a = await make_folder("A", parent=space)
    b = await make_folder("B", parent=space)
    a1, a2, a3 = [await make_folder(t, parent=a) for t in ("A1", "A2", "A3")]
    b1 = await make_folder("B1", parent=b)

    await service.update_position(a2.id, OWNER, 0, parent_old_id=a.id, parent_new_id=b.id)

    assert await order(service, a.id) == [a1.id, a3.id]
    assert await order(service, b.id) == [a2.id, b1.id]
    await assert_dense(service, a.id)
    await assert_dense(service, b.id)
    assert await edge_between(a.id, a2.id) is None
    moved = await edge_between(b.id, a2.id)
    assert moved.path_ids == [space.id, b.id, a2.id]


async def test_move_keeps_edge_kind(service, make_folder, edge_between):
    space = await make_folder("S")
    a = await make_folder("A", parent=space)
    b = await make_folder("B", parent=space)
    c = await make_folder("C", parent=space)
    f = await make_folder("F", parent=a)
    await service.bind_folder(b.id, f.id, OWNER)

    await service.update_position(f.id, OWNER, 0, parent_old_id=b.id, parent_new_id=c.id)

    assert (await edge_between(c.id, f.id)).is_bind is True
    assert (await edge_between(a.id, f.id)).is_bind is False


async def test_cross_space_move_is_rejected(service, make_folder, edge_between):
    s1 = await make_folder("S1")
    s2 = await make_folder("S2")
    a = await make_folder("A", parent=s1)

    with pytest.raises(ValidationError) as exc_info:
        await service.update_position(a.id, OWNER, 0, parent_old_id=s1.id, parent_new_id=s2.id)
    assert exc_info.value.detail == "cross-space move"
    assert await edge_between(s1.id, a.id) is not None


async def test_move_under_own_descendant_rolls_back(service, make_folder, edge_between):
    space = await make_folder("S")
    a = await make_folder("A", parent=space)
    b = await make_folder("B", parent=a)

    with pytest.raises(FolderLoopError):
        await service.update_position(a.id, OWNER, 0, parent_old_id=space.id, parent_new_id=b.id)

    assert await edge_between(space.id, a.id) is not None
    assert await order(service, space.id) == [a.id]


async def test_root_ordering_is_for_spaces_only(service, make_folder):
    s1 = await make_folder("S1")
    s2 = await make_folder("S2")
    a = await make_folder("A", parent=s1)

    await service.update_position(s2.id, OWNER, 0)
    assert await order(service, None) == [s2.id, s1.id]

    with pytest.raises(ValidationError):
        await service.update_position(a.id, OWNER, 0)
    with pytest.raises(ValidationError):
        await service.update_position(a.id, OWNER, 0, parent_old_id=s1.id)
    with pytest.raises(ValidationError):
        await service.update_position(s1.id, OWNER, 0, parent_old_id=None, parent_new_id=s2.id)


async def test_hidden_siblings_follow_visible_ones(service, make_folder):
    space = await make_folder("S")
    a, b, c = [await make_folder(t, parent=space) for t in "ABC"]
    await service.archive(a.id, OWNER)

    await service.update_position(c.id, OWNER, 0, parent_old_id=space.id, parent_new_id=space.id)

    assert await order(service, space.id) == [c.id, b.id, a.id]
    await assert_dense(service, space.id)


async def test_positions_are_per_user(session_factory, service, make_folder):
    space = await make_folder("S")
    a, b = [await make_folder(t, parent=space) for t in "AB"]

    async with UnitOfWork(session_factory) as uow:
        await PositionManager(uow.session).fix_index(space.id, OTHER, "root", moving_child_id=b.id, desired_index=0)

    assert await order(service, space.id, OTHER) == [b.id, a.id]
    assert await order(service, space.id, OWNER) == [a.id, b.id]


async def test_unbind_compacts_every_viewer(session_factory, service, make_folder):
    space = await make_folder("S")
    g = await make_folder("G", parent=space)
    x, f, y = [await make_folder(t, parent=space) for t in "XFY"]
    await service.bind_folder(g.id, f.id, OWNER)
    await service.bind_folder(g.id, x.id, OWNER)
    await service.bind_folder(g.id, y.id, OWNER)
    async with UnitOfWork(session_factory) as uow:
        await PositionManager(uow.session).fix_index(g.id, OTHER, "root")

    await service.unbind_folder(g.id, f.id, OWNER)

    assert await order(service, g.id, OWNER) == [x.id, y.id]
    assert await order(service, g.id, OTHER) == [x.id, y.id]
    await assert_dense(service, g.id, OWNER)
    await assert_dense(service, g.id, OTHER)


async def test_favourites_shift_and_renumber(service, make_folder):
    space = await make_folder("S")
    a, b, c, d = [await make_folder(t, parent=space) for t in "ABCD"]
    for folder in (a, b, c, d):
        await service.mark_favourite(folder.id, OWNER)

    async def favourite_ids():
        return [f.id for f in await service.get_favourites(OWNER)]

    assert await favourite_ids() == [a.id, b.id, c.id, d.id]

    await service.update_favourite_position(d.id, OWNER, 0)
    assert await favourite_ids() == [d.id, a.id, b.id, c.id]

    await service.update_favourite_position(d.id, OWNER, 2)
    assert await favourite_ids() == [a.id, b.id, d.id, c.id]

    moved = await service.update_favourite_position(c.id, OWNER, 1)
    assert [f.folder_id for f in moved] == [a.id, c.id, b.id, d.id]
    assert [f.index for f in moved] == [0, 1, 2, 3]

    await service.unmark_favourite(c.id, OWNER)
    moved = await service.update_favourite_position(a.id, OWNER, 10)
    assert [(f.folder_id, f.index) for f in moved] == [(b.id, 0), (d.id, 1), (a.id, 2)]


async def test_favourite_errors_and_archived_filter(service, make_folder):
    space = await make_folder("S")
    a = await make_folder("A", parent=space)
    await service.mark_favourite(a.id, OWNER)
    await service.mark_favourite(space.id, OWNER)

    with pytest.raises(ConflictError):
        await service.mark_favourite(a.id, OWNER)
    with pytest.raises(NotFoundError):
        await service.unmark_favourite(a.id, OTHER)

    spaces = await service.get_favourites(OWNER, folder_types=[FolderType.SPACE])
    assert [f.id for f in spaces] == [space.id]

    await service.archive(a.id, OWNER)
    assert [f.id for f in await service.get_favourites(OWNER)] == [space.id]
