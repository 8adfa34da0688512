"""Tests for the ModelSet query and sort engine."""

import pytest

from netconfig.errors import ConflictError, InternalError, ValidationError
from netconfig.models import IntegerField, Model, ModelSet, StringField
from netconfig.models.modelset import natural_sort_key, regular_sort_key


class TestHost(Model):
    __test__ = False

    config_path = "hosts"
    many = True
    always_apply = True

    name = StringField(required=True)
    port = IntegerField()
    tags = StringField(many=True)
    zone = StringField()

    def check_delete(self):
        if self.name == "locked":
            raise ConflictError(f"Host {self.name} is locked")


class TestHostGroup(Model):
    __test__ = False

    config_path = "hostgroups"
    many = True

    name = StringField()


HOSTS = {
    "0": {"name": "host10", "port": "8080", "tags": "web,prod", "zone": "b"},
    "1": {"name": "locked", "port": "22", "tags": "", "zone": "c"},
    "2": {"name": "host2", "port": "443", "tags": "web", "zone": "a"},
    "3": {"name": "host1", "port": "8080", "tags": "db", "zone": "a"},
}


@pytest.fixture()
def hosts(context, store):
    store.set("hosts", HOSTS)
    return TestHost.read_all(context)


def names(models):
    return [model.name for model in models]


class TestModelSetConstruction:
    """Test suite for ModelSet membership rules."""

    def test_rejects_non_models(self):
        with pytest.raises(InternalError) as exc_info:
            ModelSet(["not a model"])
        assert exc_info.value.code == "MODELSET_INVALID_MEMBER"
        assert exc_info.value.status_code == 500

    def test_rejects_mixed_schemas(self, context, hosts):
        group = TestHostGroup(context, id=0)
        with pytest.raises(InternalError):
            ModelSet([hosts.first(), group])

    def test_rejects_duplicate_identity(self, hosts):
        with pytest.raises(InternalError):
            ModelSet([hosts[0], hosts[0]])

    def test_store_order(self, hosts):
        assert names(hosts) == ["host10", "locked", "host2", "host1"]
        assert len(hosts) == 4


class TestModelSetFilter:
    """Test suite for query filters."""

    def test_exact_is_default_operator(self, hosts):
        assert names(hosts.query({"zone": "a"})) == names(hosts.query({"zone__exact": "a"}))
        assert names(hosts.query({"zone": "a"})) == ["host2", "host1"]

    def test_except(self, hosts):
        assert names(hosts.query({"zone__except": "a"})) == ["host10", "locked"]

    def test_substring_operators(self, hosts):
        assert names(hosts.query({"name__startswith": "host"})) == ["host10", "host2", "host1"]
        assert names(hosts.query({"name__endswith": "0"})) == ["host10"]
        assert names(hosts.query({"name__contains": "ock"})) == ["locked"]

    def test_contains_matches_list_members(self, hosts):
        assert names(hosts.query({"tags__contains": "web"})) == ["host10", "host2"]

    def test_ordered_comparison_is_numeric_for_numbers(self, hosts):
        assert names(hosts.query({"port__gt": 443})) == ["host10", "host1"]
        assert names(hosts.query({"port__lte": "443"})) == ["locked", "host2"]
        assert names(hosts.query({"port__gte": 8080})) == ["host10", "host1"]
        assert names(hosts.query({"port__lt": 100})) == ["locked"]

    def test_ordered_comparison_is_lexical_for_strings(self, hosts):
        assert names(hosts.query({"name__gt": "host1"})) == ["host10", "locked", "host2"]

    def test_filters_are_and_combined(self, hosts):
        assert names(hosts.query({"zone": "a", "port__gt": 1000})) == ["host1"]

    def test_filter_on_id(self, hosts):
        assert names(hosts.query({"id__gte": 2})) == ["host2", "host1"]

    def test_unknown_operator(self, hosts):
        with pytest.raises(ValidationError) as exc_info:
            hosts.query({"name__like": "host"})
        assert exc_info.value.code == "QUERY_INVALID_OPERATOR"

    def test_unknown_field(self, hosts):
        with pytest.raises(ValidationError) as exc_info:
            hosts.query({"colour": "blue"})
        assert exc_info.value.code == "QUERY_UNKNOWN_FIELD"

    def test_model_class_query(self, context, hosts):
        result = TestHost.query(context, {"zone": "a"}, sort_by="name", sort_flags="natural")
        assert names(result) == ["host1", "host2"]


class TestModelSetSort:
    """Test suite for sorting."""

    def test_multi_key_sort(self, hosts):
        result = hosts.sort(["port", "name"])
        assert names(result) == ["locked", "host2", "host1", "host10"]

        models = list(result)
        for current, following in zip(models, models[1:]):
            assert current.port <= following.port
            if current.port == following.port:
                assert current.name <= following.name

    def test_sort_is_stable(self, hosts):
        assert names(hosts.sort("zone")) == ["host2", "host1", "host10", "locked"]

    def test_regular_sort_is_lexical(self, hosts):
        assert names(hosts.sort("name")) == ["host1", "host10", "host2", "locked"]

    def test_natural_sort(self, hosts):
        assert names(hosts.sort("name", flags="natural")) == ["host1", "host2", "host10", "locked"]

    def test_descending(self, hosts):
        assert names(hosts.sort("port", order="desc")) == ["host10", "host1", "host2", "locked"]
        assert names(hosts.sort("port", order="descending")) == names(hosts.sort("port", order="desc"))

    def test_invalid_order_and_flags(self, hosts):
        with pytest.raises(ValidationError) as exc_info:
            hosts.sort("name", order="sideways")
        assert exc_info.value.code == "SORT_INVALID_ORDER"

        with pytest.raises(ValidationError) as exc_info:
            hosts.sort("name", flags="fuzzy")
        assert exc_info.value.code == "SORT_INVALID_FLAGS"

    def test_unknown_sort_field(self, hosts):
        with pytest.raises(ValidationError) as exc_info:
            hosts.sort("colour")
        assert exc_info.value.code == "SORT_UNKNOWN_FIELD"

    def test_sort_keys_order_none_first(self):
        assert sorted([3, None, 1], key=regular_sort_key) == [None, 1, 3]
        assert sorted(["a10", "a9", None], key=natural_sort_key) == [None, "a9", "a10"]

    def test_reverse_twice_restores_order(self, hosts):
        assert names(hosts.reverse()) == ["host1", "host2", "locked", "host10"]
        assert names(hosts.reverse().reverse()) == names(hosts)


class TestModelSetPagination:
    """Test suite for limit and offset."""

    def test_pagination_applies_after_sort(self, hosts):
        result = hosts.query(sort_by="name", sort_flags="natural", limit=2, offset=1)
        assert names(result) == ["host2", "host10"]

    def test_zero_limit_is_unlimited(self, hosts):
        assert hosts.query(limit=0, offset=3).count() == 1

    def test_negative_values_rejected(self, hosts):
        with pytest.raises(ValidationError) as exc_info:
            hosts.query(limit=-1)
        assert exc_info.value.code == "QUERY_INVALID_PAGINATION"


class TestModelSetInspection:
    """Test suite for exists, count and first."""

    def test_exists_and_count(self, hosts):
        assert hosts.exists()
        assert hosts.count() == 4
        assert not hosts.query({"zone": "z"}).exists()

    def test_first(self, hosts):
        assert hosts.first().name == "host10"

    def test_first_on_empty_set(self, hosts):
        with pytest.raises(InternalError) as exc_info:
            hosts.query({"zone": "z"}).first()
        assert exc_info.value.code == "MODELSET_EMPTY"

    def test_empty_set_keeps_schema(self, context):
        empty = TestHost.read_all(context)
        assert empty.model_class is TestHost
        with pytest.raises(ValidationError):
            empty.query({"colour": "blue"})

    def test_to_representation(self, hosts):
        representation = hosts.query({"name": "host1"}).to_representation()
        assert representation == [{"id": 3, "name": "host1", "port": 8080, "tags": ["db"], "zone": "a"}]


class TestModelSetDelete:
    """Test suite for bulk deletion."""

    def test_delete_all_members(self, context, store, hosts):
        deleted = hosts.query({"zone": "a"}).delete()
        assert names(deleted) == ["host2", "host1"]
        assert sorted(store.get("hosts")) == ["0", "1"]

    def test_failure_aborts_remaining(self, store, hosts):
        with pytest.raises(ConflictError):
            hosts.delete()
        assert sorted(store.get("hosts")) == ["1", "2", "3"]

    def test_set_invalidated_after_delete(self, hosts):
        target = hosts.query({"zone": "b"})
        target.delete()
        with pytest.raises(InternalError) as exc_info:
            target.count()
        assert exc_info.value.code == "MODELSET_INVALIDATED"
