from __future__ import annotations

from pydatalayer.state.events import MergeMode
from pydatalayer.state.merge import apply_update, deep_merge, shallow_replace


def test_deep_merge_recurses_into_nested_mappings() -> None:
    target = {"person": {"name": {"firstName": "Ada", "lastName": "Lovelace"}, "gender": "f"}}
    result = deep_merge(target, {"person": {"name": {"firstName": "Grace"}}})

    assert result == {"person": {"name": {"firstName": "Grace", "lastName": "Lovelace"}, "gender": "f"}}


def test_deep_merge_overwrites_with_none_and_empty_values() -> None:
    target = {"product": {"id": "p1", "tags": ["a"], "meta": {"x": 1}}}
    result = deep_merge(target, {"product": {"id": None, "tags": [], "meta": ""}})

    assert result == {"product": {"id": None, "tags": [], "meta": ""}}


def test_deep_merge_replaces_scalar_with_mapping() -> None:
    result = deep_merge({"page": "home"}, {"page": {"name": "cart"}})
    assert result == {"page": {"name": "cart"}}


def test_deep_merge_does_not_mutate_inputs() -> None:
    target = {"cart": {"products": {"p1": {"quantity": 1}}}}
    source = {"cart": {"products": {"p1": {"quantity": 2}}}}

    result = deep_merge(target, source)
    result["cart"]["products"]["p1"]["quantity"] = 99

    assert target == {"cart": {"products": {"p1": {"quantity": 1}}}}
    assert source == {"cart": {"products": {"p1": {"quantity": 2}}}}


def test_shallow_replace_drops_nested_keys_absent_from_payload() -> None:
    target = {"cart": {"products": {"p1": {}, "p2": {}}}, "page": {"name": "home"}}
    result = shallow_replace(target, {"cart": {"products": {"p2": {}}}})

    assert result == {"cart": {"products": {"p2": {}}}, "page": {"name": "home"}}


def test_deep_merge_after_shallow_replace_cannot_resurrect_removed_item() -> None:
    tree = {"cart": {"products": {"p1": {"quantity": 1}, "p2": {"quantity": 1}}}}

    tree = apply_update(tree, {"cart": {"products": {"p2": {"quantity": 1}}}}, MergeMode.SHALLOW)
    tree = apply_update(tree, {"cart": {"productCount": 1}}, MergeMode.DEEP)

    assert tree == {"cart": {"products": {"p2": {"quantity": 1}}, "productCount": 1}}


def test_apply_update_starts_from_empty_target() -> None:
    assert apply_update(None, {"a": {"b": 1}}, MergeMode.DEEP) == {"a": {"b": 1}}
    assert apply_update(None, {"a": 1}, MergeMode.SHALLOW) == {"a": 1}
