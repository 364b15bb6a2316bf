# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Tests for the interceptor chain.

Covers stage ordering around the core operation, failure propagation between
paired handlers, registration handles, and snapshot isolation of a run.
"""

import anyio
import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from interpose.chain import Interceptor, InterceptorChain, Outcome, Phase
from interpose.errors import StageTransformError, ValidationError


class OperationFailed(Exception):
    pass


async def echo(request: dict) -> dict:
    """Core operation double - fails on the ``error`` flag, echoes otherwise."""
    await anyio.sleep(0)
    if request.get("error"):
        raise OperationFailed("request failed")
    return dict(request)


class TestStageOrdering:
    """Pre stages run newest first, post stages oldest first."""

    @pytest.mark.anyio
    async def test_pre_interceptors_run_in_reverse_registration_order(self, trace):
        async def operation(value):
            trace.append("core")
            return value

        chain = InterceptorChain(operation)
        for name in ("a", "b", "c"):
            chain.register_pre(lambda v, name=name: trace.append(name) or v)

        await chain.run("x")
        assert trace == ["c", "b", "a", "core"]

    @pytest.mark.anyio
    async def test_post_interceptors_run_in_registration_order(self, trace):
        async def operation(value):
            trace.append("core")
            return value

        chain = InterceptorChain(operation)
        for name in ("a", "b", "c"):
            chain.register_post(lambda v, name=name: trace.append(name) or v)

        await chain.run("x")
        assert trace == ["core", "a", "b", "c"]

    @pytest.mark.anyio
    async def test_request_and_response_interceptors_combine_values(self):
        chain = InterceptorChain(echo)

        def add_first(request):
            return {**request, "extraParams1": "extraParams1"}

        async def add_second(request):
            return {**request, "extraParams2": "extraParams2"}

        def combine(response):
            return " ".join(
                [response["extraParams1"], response["extraParams2"], response["message"]]
            )

        chain.register_pre(add_first)
        chain.register_pre(add_second)
        chain.register_post(combine)

        result = await chain.run({"message": "message1"})
        assert result == "extraParams1 extraParams2 message1"

    @pytest.mark.anyio
    async def test_core_operation_runs_once_per_run(self):
        calls = []

        async def operation(value):
            calls.append(value)
            return value

        chain = InterceptorChain(operation)
        chain.register_pre(lambda v: v + 1)
        chain.register_post(lambda v: v * 2)

        assert await chain.run(1) == 4
        assert await chain.run(2) == 6
        assert calls == [2, 3]

    def test_assemble_places_core_between_pre_and_post(self):
        chain = InterceptorChain(echo)
        first = chain.register_pre(lambda v: v)
        second = chain.register_pre(lambda v: v)
        post = chain.register_post(lambda v: v)

        stages = chain.assemble({})
        assert [s.phase for s in stages] == [
            Phase.PRE,
            Phase.PRE,
            Phase.CORE,
            Phase.POST,
        ]
        assert [s.handle for s in stages] == [second, first, 0, post]
        assert stages[2].resolved is echo
        assert stages[2].rejected is None

    @given(
        pre_count=st.integers(min_value=0, max_value=6),
        post_count=st.integers(min_value=0, max_value=6),
    )
    @hyp_settings(max_examples=25, deadline=None)
    def test_ordering_property(self, pre_count, post_count):
        trace = []

        def operation(value):
            trace.append("core")
            return value

        chain = InterceptorChain(operation)
        for i in range(pre_count):
            chain.register_pre(lambda v, i=i: trace.append(f"pre{i}") or v)
        for i in range(post_count):
            chain.register_post(lambda v, i=i: trace.append(f"post{i}") or v)

        anyio.run(chain.run, None)

        expected = (
            [f"pre{i}" for i in reversed(range(pre_count))]
            + ["core"]
            + [f"post{i}" for i in range(post_count)]
        )
        assert trace == expected


class TestFailurePropagation:
    """Failures travel to the next stage that has a rejected handler."""

    @pytest.mark.anyio
    async def test_core_rejection_reaches_first_post_rejected_unchanged(self):
        seen = []
        chain = InterceptorChain(echo)
        chain.register_pre(lambda v: v)

        def recover(error):
            seen.append(error)
            return "recovered"

        chain.register_post(lambda v: "not called", recover)
        chain.register_post(None, lambda e: "second handler not reached")

        result = await chain.run({"error": True})
        assert result == "recovered"
        assert len(seen) == 1
        assert type(seen[0]) is OperationFailed
        assert str(seen[0]) == "request failed"

    @pytest.mark.anyio
    async def test_rejected_handler_returning_nothing_settles_with_none(self):
        logged = []
        chain = InterceptorChain(echo)
        chain.register_post(lambda v: v, lambda e: logged.append(str(e)))

        result = await chain.run({"error": True})
        assert result is None
        assert logged == ["request failed"]

    @pytest.mark.anyio
    async def test_unhandled_rejection_raises_last_thrown_value(self):
        chain = InterceptorChain(echo)

        def translate(error):
            raise KeyError("translated")

        chain.register_post(None, translate)
        chain.register_post(lambda v: v)

        with pytest.raises(KeyError, match="translated"):
            await chain.run({"error": True})

    @pytest.mark.anyio
    async def test_pre_failure_skips_core_operation(self):
        calls = []

        async def operation(value):
            calls.append(value)
            return value

        chain = InterceptorChain(operation)

        def reject(_):
            raise ValueError("bad request")

        chain.register_pre(reject)

        with pytest.raises(ValueError, match="bad request"):
            await chain.run("x")
        assert calls == []

    @pytest.mark.anyio
    async def test_pre_rejected_handler_recovers_earlier_failure(self):
        chain = InterceptorChain(echo)

        def reject(_):
            raise ValueError("bad request")

        # registered first -> runs last among pre stages
        chain.register_pre(None, lambda e: {"message": "fallback"})
        chain.register_pre(reject)

        assert await chain.run({"message": "original"}) == {"message": "fallback"}

    @pytest.mark.anyio
    async def test_sync_core_operation_is_accepted(self):
        chain = InterceptorChain(lambda v: v.upper())
        assert await chain.run("abc") == "ABC"

    @pytest.mark.anyio
    async def test_stage_errors_are_wrapped_when_enabled(self):
        chain = InterceptorChain(echo, wrap_stage_errors=True)

        def explode(_):
            raise ValueError("boom")

        handle = chain.register_post(explode)

        with pytest.raises(StageTransformError) as exc_info:
            await chain.run({"message": "m"})
        assert exc_info.value.phase == "post"
        assert exc_info.value.handle == handle
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.anyio
    async def test_core_errors_are_never_wrapped(self):
        chain = InterceptorChain(echo, wrap_stage_errors=True)
        chain.register_pre(lambda v: v)

        with pytest.raises(OperationFailed):
            await chain.run({"error": True})


class TestRegistration:
    """Handles, ejection and run-time snapshots."""

    def test_interceptor_requires_a_handler(self):
        with pytest.raises(ValidationError):
            Interceptor()

    def test_interceptor_rejects_non_callables(self):
        with pytest.raises(ValidationError):
            Interceptor(resolved="not callable")

    def test_operation_must_be_callable(self):
        with pytest.raises(ValidationError):
            InterceptorChain(object())

    def test_run_when_is_pre_only(self):
        chain = InterceptorChain(echo)
        with pytest.raises(ValidationError):
            chain.post.use(lambda v: v, run_when=lambda v: True)

    def test_handles_are_distinct_per_phase(self):
        chain = InterceptorChain(echo)
        assert chain.register_pre(lambda v: v) == 1
        assert chain.register_pre(lambda v: v) == 2
        assert chain.register_post(lambda v: v) == 1
        assert len(chain.pre) == 2
        assert len(chain.post) == 1

    @pytest.mark.anyio
    async def test_eject_removes_interceptor_from_later_runs(self):
        chain = InterceptorChain(echo)
        handle = chain.register_pre(lambda r: {**r, "tag": True})

        assert (await chain.run({}))["tag"] is True
        assert chain.pre.eject(handle) is True
        assert chain.pre.eject(handle) is False
        assert "tag" not in await chain.run({})

    @pytest.mark.anyio
    async def test_clear_removes_everything(self):
        chain = InterceptorChain(echo)
        chain.register_post(lambda r: "changed")
        chain.post.clear()
        assert await chain.run({"a": 1}) == {"a": 1}
        assert list(chain.post) == []

    @pytest.mark.anyio
    async def test_run_when_filters_pre_interceptors_on_input(self):
        chain = InterceptorChain(echo)
        chain.register_pre(
            lambda r: {**r, "auth": "token"},
            run_when=lambda r: r.get("private", False),
        )

        assert "auth" not in await chain.run({"private": False})
        assert (await chain.run({"private": True}))["auth"] == "token"

    @pytest.mark.anyio
    async def test_registration_during_run_does_not_affect_that_run(self, trace):
        chain = InterceptorChain(echo)

        def register_late(request):
            chain.register_post(lambda r: trace.append("late") or r)
            return request

        chain.register_pre(register_late)

        await chain.run({})
        assert trace == []

        await chain.run({})
        assert trace == ["late"]

    @pytest.mark.anyio
    async def test_chain_is_itself_an_operation(self):
        inner = InterceptorChain(echo)
        inner.register_post(lambda r: r["message"])

        outer = InterceptorChain(inner)
        outer.register_post(str.upper)

        assert await outer({"message": "hi"}) == "HI"


class TestOutcome:
    @pytest.mark.anyio
    async def test_passthrough_without_matching_handler(self):
        failure = Outcome.failure(ValueError("x"))
        assert await failure.then(lambda v: v, None) is failure

        success = Outcome.success(1)
        assert await success.then(None, lambda e: 0) is success

    def test_unwrap(self):
        assert Outcome.success(5).unwrap() == 5
        with pytest.raises(ValueError):
            Outcome.failure(ValueError("x")).unwrap()
