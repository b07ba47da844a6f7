"""Unit tests for query profiling."""
import pytest
from dbadapter.exceptions import AlreadyEnded, ProfilerError, UnknownHandle
from dbadapter.profiler import Profiler, ProfileStatus, QueryProfile, QueryType


class FakeClock:
    """Clock advanced by hand."""

    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now

    def tick(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def profiler(clock):
    return Profiler(enabled=True, clock=clock)


class TestQueryType:

    @pytest.mark.parametrize(('sql', 'expected'), [
        ('select * from t', QueryType.SELECT),
        ('  SELECT 1', QueryType.SELECT),
        ('Insert into t values (1)', QueryType.INSERT),
        ('update t set a = 1', QueryType.UPDATE),
        ('DELETE FROM t', QueryType.DELETE),
        ('with x as (select 1) select * from x', QueryType.QUERY),
        ('create table t (a int)', QueryType.QUERY),
    ], ids=['select', 'leading_space', 'insert', 'update', 'delete', 'cte', 'ddl'])
    def test_infer(self, sql, expected):
        assert QueryType.infer(sql) == expected


class TestQueryProfile:

    def test_elapsed_only_after_end(self, clock):
        profile = QueryProfile('select 1', QueryType.SELECT, clock=clock)
        profile.start()
        clock.tick(0.5)
        assert profile.elapsed_secs is None
        profile.end()
        assert profile.elapsed_secs == pytest.approx(0.5)
        assert profile.ended_at >= profile.started_at

    def test_end_twice(self, clock):
        profile = QueryProfile('select 1', QueryType.SELECT, clock=clock)
        profile.start()
        profile.end()
        with pytest.raises(AlreadyEnded):
            profile.end()

    def test_bind_after_start_rejected(self, clock):
        profile = QueryProfile('select ?', QueryType.SELECT, clock=clock)
        profile.bind_param(1, 'a')
        profile.start()
        with pytest.raises(ProfilerError):
            profile.bind_param(1, 'b')
        assert profile.query_params == {1: 'a'}

    def test_sequence_params_are_one_based(self, clock):
        profile = QueryProfile('select ?, ?', QueryType.SELECT, clock=clock)
        profile.bind_params(['a', 'b'])
        assert profile.query_params == {1: 'a', 2: 'b'}

    def test_copy_has_fresh_state(self, clock):
        profile = QueryProfile('select 1', QueryType.SELECT, clock=clock)
        profile.bind_param(1, 'a')
        profile.start()
        profile.end()
        clone = profile.copy()
        assert clone.query == 'select 1'
        assert clone.query_type == QueryType.SELECT
        assert not clone.has_started
        assert not clone.has_ended
        assert clone.query_params == {}


class TestProfilerLifecycle:

    def test_start_end_stored(self, profiler, clock):
        handle = profiler.query_start('select 1')
        clock.tick(0.25)
        assert profiler.query_end(handle) is ProfileStatus.STORED
        profile = profiler.get_query_profile(handle)
        assert profile.elapsed_secs >= 0
        assert profile.query_type == QueryType.SELECT

    def test_end_twice_fails(self, profiler):
        handle = profiler.query_start('select 1')
        profiler.query_end(handle)
        with pytest.raises(ProfilerError):
            profiler.query_end(handle)

    def test_unknown_handle(self, profiler):
        with pytest.raises(UnknownHandle, match="'42'"):
            profiler.query_end(42)

    def test_explicit_type(self, profiler):
        handle = profiler.query_start('begin', QueryType.TRANSACTION)
        assert profiler.get_query_profile(handle).query_type == QueryType.TRANSACTION

    def test_params_recorded(self, profiler):
        handle = profiler.query_start('select ?', params=[5])
        assert profiler.get_query_profile(handle).query_params == {1: 5}

    def test_handles_never_reused(self, profiler, clock):
        profiler.set_filter_elapsed_secs(1)
        first = profiler.query_start('select 1')
        assert profiler.query_end(first) is ProfileStatus.IGNORED
        second = profiler.query_start('select 2')
        assert second > first
        profiler.clear()
        third = profiler.query_start('select 3')
        assert third > second

    def test_clone_for_reuse(self, profiler):
        first = profiler.query_start('select ?', params=['a'])
        profiler.query_end(first)
        second = profiler.query_clone(first, params=['b'])
        profiler.query_end(second)
        profiles = profiler.get_query_profiles()
        assert list(profiles) == [first, second]
        assert profiles[second].query == 'select ?'
        assert profiles[second].query_params == {1: 'b'}
        assert profiles[first].query_params == {1: 'a'}

    def test_profile_context_manager_ends_on_error(self, profiler):
        with pytest.raises(RuntimeError), profiler.profile('connect', QueryType.CONNECT) as handle:
            raise RuntimeError('boom')
        assert profiler.get_query_profile(handle).has_ended

    def test_discard(self, profiler):
        handle = profiler.query_start('select 1')
        profiler.discard(handle)
        assert handle not in profiler
        with pytest.raises(UnknownHandle):
            profiler.discard(handle)


class TestDisabledProfiler:

    def test_start_is_noop(self, clock):
        profiler = Profiler(clock=clock)
        assert profiler.query_start('select 1') is None
        assert len(profiler) == 0

    def test_disable_keeps_history(self, profiler):
        handle = profiler.query_start('select 1')
        profiler.query_end(handle)
        profiler.set_enabled(False)
        assert profiler.query_start('select 2') is None
        assert profiler.get_total_num_queries() == 1

    def test_end_while_disabled_leaves_profile(self, profiler):
        handle = profiler.query_start('select 1')
        profiler.enabled = False
        assert profiler.query_end(handle) is ProfileStatus.IGNORED
        assert handle in profiler
        assert not profiler.get_query_profile(handle).has_ended
        profiler.enabled = True
        assert profiler.query_end(handle) is ProfileStatus.STORED

    def test_clone_while_disabled(self, profiler):
        handle = profiler.query_start('select 1')
        profiler.query_end(handle)
        profiler.enabled = False
        assert profiler.query_clone(handle) is None


class TestFilters:

    def test_elapsed_filter_evicts(self, profiler, clock):
        profiler.set_filter_elapsed_secs(1.0)
        fast = profiler.query_start('select 1')
        clock.tick(0.5)
        assert profiler.query_end(fast) is ProfileStatus.IGNORED
        slow = profiler.query_start('select 2')
        clock.tick(2)
        assert profiler.query_end(slow) is ProfileStatus.STORED
        assert list(profiler.get_query_profiles()) == [slow]

    def test_type_filter_evicts(self, profiler):
        profiler.set_filter_query_type(QueryType.SELECT | QueryType.UPDATE)
        kept = profiler.query_start('select 1')
        dropped = profiler.query_start('insert into t values (1)')
        assert profiler.query_end(kept) is ProfileStatus.STORED
        assert profiler.query_end(dropped) is ProfileStatus.IGNORED
        assert dropped not in profiler

    def test_filters_can_be_cleared(self, profiler):
        profiler.set_filter_elapsed_secs(5).set_filter_query_type(QueryType.DELETE)
        profiler.set_filter_elapsed_secs(None).set_filter_query_type(None)
        handle = profiler.query_start('select 1')
        assert profiler.query_end(handle) is ProfileStatus.STORED

    def test_negative_elapsed_filter(self, profiler):
        with pytest.raises(ValueError):
            profiler.set_filter_elapsed_secs(-1)

    def test_clear_keeps_settings(self, profiler):
        profiler.set_filter_elapsed_secs(3)
        profiler.query_start('select 1')
        profiler.clear()
        assert len(profiler) == 0
        assert profiler.enabled
        assert profiler.filter_elapsed_secs == 3


class TestAggregates:

    def test_unfinished_excluded_by_default(self, profiler, clock):
        done = profiler.query_start('select 1')
        clock.tick(1)
        profiler.query_end(done)
        pending = profiler.query_start('update t set a = 1')
        assert profiler.get_total_num_queries() == 1
        assert profiler.get_total_num_queries(show_unfinished=True) == 2
        assert pending in profiler.get_query_profiles(show_unfinished=True)
        assert pending not in profiler.get_query_profiles()

    def test_totals_by_type(self, profiler, clock):
        for sql, secs in [('select 1', 1), ('select 2', 2), ('delete from t', 4)]:
            handle = profiler.query_start(sql)
            clock.tick(secs)
            profiler.query_end(handle)
        assert profiler.get_total_elapsed_secs() == pytest.approx(7)
        assert profiler.get_total_elapsed_secs(QueryType.SELECT) == pytest.approx(3)
        assert profiler.get_total_num_queries(QueryType.DELETE) == 1
        assert len(profiler.get_query_profiles(QueryType.SELECT | QueryType.DELETE)) == 3

    def test_totals_when_empty(self, profiler):
        assert profiler.get_total_elapsed_secs() == 0.0
        assert profiler.get_total_num_queries() == 0
        assert profiler.get_last_query_profile() is None

    def test_last_query_profile(self, profiler):
        profiler.query_start('select 1')
        profiler.query_start('select 2')
        assert profiler.get_last_query_profile().query == 'select 2'
