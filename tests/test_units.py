"""Tests for UnitBuilder aggregation rules."""

from __future__ import annotations

from pathlib import Path

from sbomsentinel.engines.sbom_pipeline.models import ManifestDescriptor, PackagingKind
from sbomsentinel.engines.sbom_pipeline.units import UnitBuilder, display_label

ROOT = Path("/proj")


def _pom(rel: str) -> Path:
    return ROOT / rel / "pom.xml" if rel else ROOT / "pom.xml"


class FakeProvider:
    """In-memory provider: ``{path: (packaging, module_refs)}``."""

    manifest_filename = "pom.xml"

    def __init__(self, structure: dict[Path, tuple[str, tuple[str, ...]]]) -> None:
        self.structure = structure
        self.reads: list[Path] = []

    def read(self, path: Path) -> ManifestDescriptor:
        self.reads.append(path)
        packaging, modules = self.structure[path]
        kind = PackagingKind.AGGREGATOR if packaging == "pom" else PackagingKind.ORDINARY
        return ManifestDescriptor(
            path=path, packaging_kind=kind, module_refs=modules, packaging=packaging
        )


def _build(structure, order=None):
    provider = FakeProvider(structure)
    paths = order if order is not None else list(structure)
    return UnitBuilder(provider, ROOT).build(paths)


def _member_sets(units):
    return [set(u.members) for u in units]


def _assert_partition(units, inputs):
    seen: list[Path] = []
    for unit in units:
        seen.extend(unit.members)
    assert len(seen) == len(set(seen))
    assert set(seen) == set(inputs)


class TestAggregation:
    def test_aggregator_absorbs_modules_and_ignores_missing_refs(self):
        m1, m2, m3 = _pom(""), _pom("m2"), _pom("m3")
        structure = {
            m1: ("pom", ("m2", "m3")),
            m2: ("jar", ("m4",)),
            m3: ("jar", ()),
        }
        units = _build(structure)
        assert len(units) == 1
        unit = units[0]
        assert unit.is_aggregate
        assert unit.root == m1
        assert set(unit.members) == {m1, m2, m3}
        assert unit.members[0] == m1
        assert unit.display_label == "pom.xml"
        assert unit.cache_key == f"{m1}#multi"

    def test_nested_aggregators_collapse_into_one_unit(self):
        top, mid, leaf, other = _pom(""), _pom("mid"), _pom("mid/leaf"), _pom("other")
        structure = {
            top: ("pom", ("mid", "other")),
            mid: ("pom", ("leaf",)),
            leaf: ("jar", ()),
            other: ("jar", ()),
        }
        units = _build(structure)
        assert _member_sets(units) == [{top, mid, leaf, other}]

    def test_unrelated_manifests_stay_standalone(self):
        a, b = _pom("a"), _pom("b")
        units = _build({a: ("jar", ()), b: ("war", ())})
        assert [u.root for u in units] == [a, b]
        assert all(not u.is_aggregate for u in units)
        assert [u.members for u in units] == [(a,), (b,)]
        assert units[0].cache_key == str(a)

    def test_aggregator_with_only_unresolved_modules_packs_alone(self):
        parent = _pom("")
        units = _build({parent: ("pom", ("missing",))})
        assert len(units) == 1
        assert units[0].is_aggregate
        assert units[0].members == (parent,)

    def test_aggregator_with_no_modules_is_standalone(self):
        parent = _pom("")
        units = _build({parent: ("pom", ())})
        assert not units[0].is_aggregate

    def test_module_of_ordinary_parent_becomes_standalone(self):
        jar, child = _pom(""), _pom("child")
        structure = {jar: ("jar", ("child",)), child: ("jar", ())}
        units = _build(structure)
        assert [u.members for u in units] == [(jar,), (child,)]
        _assert_partition(units, structure)

    def test_relative_refs_are_normalized(self):
        parent, sibling = _pom("parent"), _pom("sibling")
        structure = {parent: ("pom", ("../sibling",)), sibling: ("jar", ())}
        units = _build(structure)
        assert _member_sets(units) == [{parent, sibling}]


class TestCyclesAndDiamonds:
    def test_cycle_below_root_terminates(self):
        root, a, b = _pom(""), _pom("a"), _pom("a/b")
        structure = {
            root: ("pom", ("a",)),
            a: ("pom", ("b",)),
            b: ("pom", ("..",)),
        }
        units = _build(structure)
        assert _member_sets(units) == [{root, a, b}]
        _assert_partition(units, structure)

    def test_parentless_cycle_yields_standalone_units(self):
        a, b = _pom("a"), _pom("b")
        structure = {a: ("pom", ("../b",)), b: ("pom", ("../a",))}
        units = _build(structure)
        assert all(not u.is_aggregate for u in units)
        _assert_partition(units, structure)

    def test_self_reference(self):
        root = _pom("")
        units = _build({root: ("pom", (".",))})
        assert len(units) == 1
        _assert_partition(units, [root])

    def test_diamond_within_tree_collected_once(self):
        root, a, b, shared = _pom(""), _pom("a"), _pom("b"), _pom("shared")
        structure = {
            root: ("pom", ("a", "b")),
            a: ("pom", ("../shared",)),
            b: ("pom", ("../shared",)),
            shared: ("jar", ()),
        }
        units = _build(structure)
        assert len(units) == 1
        assert len(units[0].members) == 4
        _assert_partition(units, structure)

    def test_shared_module_claimed_by_first_root(self):
        # Both roots list shared; the first root in input order owns it.
        r1, r2, shared, own = _pom("r1"), _pom("r2"), _pom("shared"), _pom("r2/own")
        structure = {
            r1: ("pom", ("../shared",)),
            r2: ("pom", ("../shared", "own")),
            shared: ("jar", ()),
            own: ("jar", ()),
        }
        units = _build(structure)
        assert _member_sets(units) == [{r1, shared}, {r2, own}]
        _assert_partition(units, structure)


class TestOrdering:
    def test_output_follows_input_order(self):
        a, b, c = _pom("a"), _pom("b"), _pom("c")
        structure = {a: ("jar", ()), b: ("jar", ()), c: ("jar", ())}
        units = _build(structure, order=[c, a, b])
        assert [u.root for u in units] == [c, a, b]

    def test_aggregate_members_are_sorted_after_root(self):
        root, z, y = _pom(""), _pom("z"), _pom("y")
        units = _build({root: ("pom", ("z", "y")), z: ("jar", ()), y: ("jar", ())})
        assert units[0].members == (root, y, z)

    def test_rebuild_is_stable(self):
        root, a, b, loose = _pom(""), _pom("a"), _pom("b"), _pom("loose")
        structure = {
            root: ("pom", ("a", "b")),
            a: ("jar", ()),
            b: ("jar", ()),
            loose: ("jar", ()),
        }
        assert _build(structure) == _build(structure)

    def test_duplicates_collapse(self):
        a = _pom("a")
        provider = FakeProvider({a: ("jar", ())})
        units = UnitBuilder(provider, ROOT).build([a, a, Path("/proj/a/./pom.xml")])
        assert len(units) == 1
        assert provider.reads == [a]

    def test_empty_input(self):
        assert UnitBuilder(FakeProvider({}), ROOT).build([]) == []


class TestDisplayLabel:
    def test_relative_to_root(self):
        assert display_label(_pom("svc/api"), ROOT) == "svc/api/pom.xml"

    def test_without_root(self):
        assert display_label(Path("/x/pom.xml"), None) == "/x/pom.xml"
