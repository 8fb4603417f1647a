"""Tests for Index class."""

import threading

import pytest

from treetci import Index, TagOverflowError, TagTooLongError, InvalidDimensionError
from treetci.index import commoninds, replaceinds, sim, uniqueinds


class TestIndexBasic:
    """Basic Index tests."""

    def test_create_simple(self):
        """Test creating a simple index."""
        idx = Index(5)
        assert idx.dim == 5

    @pytest.mark.parametrize("dim", [1, 2, 7, 1024])
    def test_dim_roundtrip(self, dim):
        assert Index(dim).dim == dim

    def test_create_with_tags(self):
        """Test creating an index with tags."""
        idx = Index(3, tags="Site,n=1")
        assert idx.dim == 3
        assert idx.has_tag("Site")
        assert idx.has_tag("n=1")
        assert not idx.has_tag("Missing")

    def test_create_with_tag_list(self):
        idx = Index(3, tags=["Link", "l=2"])
        assert idx.tagset == frozenset({"Link", "l=2"})

    def test_create_with_id(self):
        """Test creating an index with explicit ID."""
        idx = Index(7, id=0xFEDCBA98_76543210, tags="Custom")

        assert idx.dim == 7
        assert idx.id == 0xFEDCBA98_76543210
        assert idx.has_tag("Custom")

    def test_explicit_id_advances_counter(self):
        big = Index(2).id + 1000
        Index(2, id=big)
        assert Index(2).id > big

    def test_id_out_of_range(self):
        with pytest.raises(ValueError):
            Index(2, id=2**64)
        with pytest.raises(ValueError):
            Index(2, id=-1)

    def test_invalid_dim(self):
        """Test that dimension must be positive."""
        with pytest.raises(InvalidDimensionError):
            Index(0)
        with pytest.raises(ValueError):
            Index(-1)


class TestIndexTags:
    """Tag-related tests."""

    def test_get_tags(self):
        """Test getting tags as string."""
        idx = Index(2, tags="Site,Link")
        assert idx.tags == "Link,Site"

    def test_empty_tags(self):
        assert Index(2).tags == ""

    def test_addtags(self):
        idx = Index(2)
        tagged = idx.addtags("NewTag")
        assert tagged.has_tag("NewTag")
        assert not idx.has_tag("NewTag")
        assert tagged == idx

    def test_settags(self):
        """Test setting tags (replaces existing)."""
        idx = Index(2, tags="Old")
        new = idx.settags("New1,New2")
        assert not new.has_tag("Old")
        assert new.has_tag("New1")
        assert new.has_tag("New2")
        assert idx.has_tag("Old")

    def test_removetags(self):
        idx = Index(2, tags="Site,n=1")
        assert idx.removetags("n=1").tags == "Site"

    def test_tag_too_long(self):
        with pytest.raises(TagTooLongError):
            Index(2, tags="x" * 17)

    def test_too_many_tags(self):
        with pytest.raises(TagOverflowError):
            Index(2, tags="a,b,c,d,e")


class TestIndexId:
    """ID-related tests."""

    def test_id_unique(self):
        """Test that IDs are unique by default."""
        idx1 = Index(3)
        idx2 = Index(3)
        assert idx1.id != idx2.id

    def test_many_ids_unique(self):
        ids = {Index(2).id for _ in range(200_000)}
        assert len(ids) == 200_000

    def test_ids_unique_across_threads(self):
        results = []

        def create():
            results.append([Index(2).id for _ in range(20_000)])

        threads = [threading.Thread(target=create) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        ids = [i for chunk in results for i in chunk]
        assert len(ids) == 8 * 20_000
        assert len(set(ids)) == len(ids)

    def test_id_preserved_in_clone(self):
        """Test that ID is preserved when cloning."""
        idx = Index(4)
        assert idx.clone().id == idx.id
        assert idx.copy().id == idx.id

    def test_sim(self):
        idx = Index(4, tags="Link")
        other = sim(idx)
        assert other.id != idx.id
        assert other.dim == idx.dim
        assert other.tags == idx.tags
        assert idx.sim() != idx


class TestIndexEquality:
    """Equality tests."""

    def test_equality_same_id(self):
        """Test that indices with same ID are equal."""
        idx = Index(3, tags="Test")
        assert idx == idx.clone()

    def test_inequality_different_id(self):
        """Test that indices with different IDs are not equal."""
        assert Index(3) != Index(3)

    def test_hash_consistent(self):
        """Test that hash is consistent with equality."""
        idx = Index(3)
        assert hash(idx) == hash(idx.clone())
        assert len({idx, idx.clone(), idx.addtags("x")}) == 1


class TestIndexSets:
    """Set helpers on lists of indices."""

    def setup_method(self):
        self.i, self.j, self.k = Index(2), Index(3), Index(4)

    def test_common_and_unique(self):
        i, j, k = self.i, self.j, self.k
        assert commoninds([i, j], [j, k]) == [j]
        assert commoninds([k, j, i], [i, k]) == [k, i]
        assert uniqueinds([i, j], [j, k]) == [i]
        assert uniqueinds([i, j], []) == [i, j]
        assert commoninds([i], [k]) == []

    def test_replaceinds(self):
        i, j, k = self.i, self.j, self.k
        assert replaceinds([i, j], [j], [k]) == [i, k]
        with pytest.raises(ValueError):
            replaceinds([i], [i, j], [k])


class TestIndexRepr:
    """String representation tests."""

    def test_repr_simple(self):
        """Test repr without tags."""
        idx = Index(5)
        assert "Index" in repr(idx)
        assert "dim=5" in repr(idx)

    def test_repr_with_tags(self):
        """Test repr with tags."""
        r = repr(Index(3, tags="Site"))
        assert "dim=3" in r
        assert "Site" in r
