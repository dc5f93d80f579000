"""RefStore unit tests."""

import pytest

from twig.errors import RefCycleError
from twig.refs import HEAD, MAX_SYMREF_DEPTH, Ref

OID_A = "a" * 40
OID_B = "b" * 40


class TestReadWrite:
    def test_missing_ref_reads_as_none(self, refs):
        assert refs.read("refs/heads/nope") == Ref(name="refs/heads/nope", value=None)

    def test_direct_round_trip(self, refs):
        refs.write("refs/tags/v1", OID_A)
        assert refs.read("refs/tags/v1").value == OID_A
        assert (refs.twig_dir / "refs" / "tags" / "v1").read_text() == OID_A + "\n"

    def test_symbolic_storage_format(self, refs):
        refs.write(HEAD, "refs/heads/main", symbolic=True, deref=False)
        assert (refs.twig_dir / "HEAD").read_text() == "ref: refs/heads/main\n"

    def test_empty_value_rejected(self, refs):
        with pytest.raises(ValueError, match="empty"):
            refs.write("refs/heads/main", "")

    def test_creates_nested_directories(self, refs):
        refs.write("refs/heads/feature/deep/name", OID_A)
        assert refs.read("refs/heads/feature/deep/name").value == OID_A


class TestSymbolicRefs:
    def test_deref_false_returns_target_name(self, refs):
        refs.write(HEAD, "refs/heads/main", symbolic=True, deref=False)
        ref = refs.read(HEAD, deref=False)
        assert ref == Ref(name=HEAD, value="refs/heads/main", symbolic=True)

    def test_deref_follows_to_direct_ref(self, refs):
        refs.write("refs/heads/main", OID_A)
        refs.write(HEAD, "refs/heads/main", symbolic=True, deref=False)
        assert refs.read(HEAD) == Ref(name="refs/heads/main", value=OID_A, symbolic=False)

    def test_unborn_branch_reads_none(self, refs):
        refs.write(HEAD, "refs/heads/main", symbolic=True, deref=False)
        ref = refs.read(HEAD)
        assert ref.name == "refs/heads/main"
        assert ref.value is None

    def test_write_through_symbolic_updates_target(self, refs):
        refs.write(HEAD, "refs/heads/main", symbolic=True, deref=False)
        refs.write(HEAD, OID_A)
        assert refs.read("refs/heads/main").value == OID_A
        assert refs.read(HEAD, deref=False).symbolic is True

    def test_write_without_deref_replaces_symbolic(self, refs):
        refs.write(HEAD, "refs/heads/main", symbolic=True, deref=False)
        refs.write(HEAD, OID_B, deref=False)
        assert refs.read(HEAD, deref=False) == Ref(name=HEAD, value=OID_B)
        assert refs.read("refs/heads/main").value is None

    def test_multi_hop_chain(self, refs):
        refs.write("refs/heads/main", OID_A)
        refs.write("refs/alias", "refs/heads/main", symbolic=True)
        refs.write(HEAD, "refs/alias", symbolic=True, deref=False)
        assert refs.read(HEAD).value == OID_A

    def test_cycle_raises(self, refs):
        refs.write("refs/a", "refs/b", symbolic=True, deref=False)
        refs.write("refs/b", "refs/a", symbolic=True, deref=False)
        with pytest.raises(RefCycleError):
            refs.read("refs/a")

    def test_long_chain_within_limit(self, refs):
        refs.write("refs/r0", OID_A)
        for i in range(1, MAX_SYMREF_DEPTH + 1):
            refs.write(f"refs/r{i}", f"refs/r{i - 1}", symbolic=True, deref=False)
        assert refs.read(f"refs/r{MAX_SYMREF_DEPTH}").value == OID_A


class TestDelete:
    def test_delete_removes(self, refs):
        refs.write("MERGE_HEAD", OID_A)
        refs.delete("MERGE_HEAD")
        assert refs.read("MERGE_HEAD").value is None

    def test_delete_missing_is_noop(self, refs):
        refs.delete("MERGE_HEAD")


class TestIterRefs:
    def test_head_first_then_refs(self, refs):
        refs.write("refs/heads/main", OID_A)
        refs.write("refs/tags/v1", OID_B)
        refs.write(HEAD, "refs/heads/main", symbolic=True, deref=False)

        items = list(refs.iter_refs())
        assert items[0][0] == HEAD
        assert sorted(name for name, _ in items[1:]) == ["refs/heads/main", "refs/tags/v1"]
        assert dict(items)[HEAD].value == OID_A

    def test_no_deref(self, refs):
        refs.write(HEAD, "refs/heads/main", symbolic=True, deref=False)
        items = dict(refs.iter_refs(deref=False))
        assert items[HEAD].symbolic is True

    def test_prefix_filter(self, refs):
        refs.write("refs/heads/main", OID_A)
        refs.write("refs/heads/dev", OID_A)
        refs.write("refs/tags/v1", OID_B)
        names = sorted(name for name, _ in refs.iter_refs(prefix="refs/heads/"))
        assert names == ["refs/heads/dev", "refs/heads/main"]

    def test_is_lazy(self, refs):
        refs.write("refs/heads/main", OID_A)
        it = refs.iter_refs()
        assert next(it)[0] == HEAD


class TestNameValidation:
    @pytest.mark.parametrize(
        "name", ["", "../escape", "refs/../../x", "/abs", "refs//x", "refs/.hidden", "a\\b"]
    )
    def test_invalid_names(self, refs, name):
        assert refs.is_valid_name(name) is False
        with pytest.raises(ValueError, match="Invalid ref name"):
            refs.read(name)

    def test_invalid_symbolic_target(self, refs):
        with pytest.raises(ValueError, match="Invalid symbolic"):
            refs.write(HEAD, "../outside", symbolic=True)
