"""Action execution.

execute(actions, ctx) runs a list of actions in order. A failing action is
logged and recorded, and its siblings still run. All state mutation goes
through ctx.signal; everything else (events, URL updates, APIs, user
actions) goes through the callables carried by the context.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import dataclasses
import inspect
import logging
import time
from typing import Any, Callable, Mapping, Sequence

from layr.actions import (
    AbortFetch,
    Action,
    Custom,
    Fetch,
    NamedFormula,
    SetURLParameter,
    SetURLParameters,
    SetVariable,
    Switch,
    TriggerEvent,
    TriggerWorkflow,
    TriggerWorkflowCallback,
    is_action,
    parse_action,
)
from layr.context import ActionContext, CustomActionContext, FetchCallbacks, build_provider_key
from layr.cycles import guard
from layr.errors import ActionError, LayrError
from layr.evaluate import evaluate, to_boolean
from layr.limits import LimitExceeded, check_limit, get_limits

logger = logging.getLogger("layr.execute")

CallbackDispatch = Callable[..., None]

# Strong references to scheduled tasks until they finish.
_pending: set[asyncio.Future] = set()


def execute(
    actions: Action | Mapping | Sequence | None,
    ctx: ActionContext,
    event: Any = None,
    callback_dispatch: CallbackDispatch | None = None,
    depth: int = 0,
) -> None:
    """Run one action or a list of actions against ctx. Never raises."""
    if actions is None:
        return
    try:
        check_limit("action", "max_depth", depth)
    except LimitExceeded as exc:
        logger.error("%s", exc)
        ctx.errors.add(ctx.trail.attribute(exc))
        return

    if is_action(actions) or isinstance(actions, Mapping):
        actions = (actions,)
    if depth == 0 and ctx.metrics is not None:
        with ctx.metrics.time("execute", "action", get_limits().action.max_execution_time):
            for index, action in enumerate(actions):
                _dispatch(action, index, ctx, event, callback_dispatch, depth)
        return
    for index, action in enumerate(actions):
        _dispatch(action, index, ctx, event, callback_dispatch, depth)


def _dispatch(
    action: Any,
    index: int,
    ctx: ActionContext,
    event: Any,
    callback_dispatch: CallbackDispatch | None,
    depth: int,
) -> None:
    parsed = parse_action(action)
    if parsed is None:
        kind = action.get("type") if isinstance(action, Mapping) else type(action).__name__
        logger.warning("Unknown action type: %s", kind)
        return

    kind = type(parsed).__name__
    started = time.perf_counter()
    succeeded = False
    with ctx.trail.step("action", kind):
        try:
            _EXECUTORS[type(parsed)](parsed, ctx, event, callback_dispatch, depth)
            succeeded = True
        except LayrError as exc:
            logger.warning("%s", exc)
            ctx.errors.add(ctx.trail.attribute(exc))
        except Exception as exc:
            logger.exception("Action execution error in %s", kind)
            ctx.errors.add(
                ActionError(
                    kind,
                    index,
                    f"Action execution error: {exc}",
                    path=ctx.trail.path,
                    component=ctx.component.name if ctx.component else None,
                    cause=exc,
                )
            )
    if ctx.metrics is not None:
        ctx.metrics.record(kind, "action", (time.perf_counter() - started) * 1000, success=succeeded)


# ─── Variants ────────────────────────────────────────────────────────────────


def _set_variable(action: SetVariable, ctx: ActionContext, event, dispatch, depth) -> None:
    value = evaluate(action.data, ctx.formula_context(event))

    def assign(data: dict) -> dict:
        data = data or {}
        return {**data, "Variables": {**(data.get("Variables") or {}), action.name: value}}

    ctx.signal.update(assign)
    # Memoized results may read Variables.
    if ctx.formula_cache is not None:
        ctx.formula_cache.clear()


def _trigger_event(action: TriggerEvent, ctx: ActionContext, event, dispatch, depth) -> None:
    if ctx.trigger_event is None:
        logger.warning("No event handler for TriggerEvent %r", action.name)
        return
    ctx.trigger_event(action.name, evaluate(action.data, ctx.formula_context(event)))


def _switch(action: Switch, ctx: ActionContext, event, dispatch, depth) -> None:
    fctx = ctx.formula_context(event)
    for case in action.cases:
        if to_boolean(evaluate(case.condition, fctx)):
            execute(case.actions, ctx, event, dispatch, depth + 1)
            return
    if action.default is not None:
        execute(action.default, ctx, event, dispatch, depth + 1)


def _fetch(action: Fetch, ctx: ActionContext, event, dispatch, depth) -> None:
    api = ctx.apis.get(action.name)
    if api is None:
        logger.warning("API not found: %s", action.name)
        return

    def continuation(actions: tuple[Action, ...]) -> Callable[[Any], None]:
        def run(payload: Any = None) -> None:
            execute(actions, ctx, payload, dispatch, depth + 1)

        return run

    callbacks = FetchCallbacks(
        on_success=continuation(action.on_success),
        on_error=continuation(action.on_error),
        on_message=continuation(action.on_message),
    )
    result = api.fetch(_named_values(action.inputs, ctx, event), callbacks)
    if inspect.isawaitable(result):
        _spawn(result)


def _abort_fetch(action: AbortFetch, ctx: ActionContext, event, dispatch, depth) -> None:
    api = ctx.apis.get(action.name)
    cancel = getattr(api, "cancel", None)
    if callable(cancel):
        cancel()


def _set_url_parameter(action: SetURLParameter, ctx: ActionContext, event, dispatch, depth) -> None:
    if ctx.set_url_parameters is None:
        logger.warning("URL parameters are not available here")
        return
    value = evaluate(action.data, ctx.formula_context(event))
    ctx.set_url_parameters({action.name: value}, action.history_mode)


def _set_url_parameters(action: SetURLParameters, ctx: ActionContext, event, dispatch, depth) -> None:
    if ctx.set_url_parameters is None:
        logger.warning("URL parameters are not available here")
        return
    ctx.set_url_parameters(_named_values(action.parameters, ctx, event), action.history_mode)


def _trigger_workflow(action: TriggerWorkflow, ctx: ActionContext, event, dispatch, depth) -> None:
    if action.context_provider:
        key = build_provider_key(action.context_provider, action.package)
        owner = ctx.providers.consume(key) if ctx.providers is not None else None
        if not isinstance(owner, ActionContext):
            logger.warning("Context provider not found: %s", key)
            return
        workflow = owner.component.workflows.get(action.name) if owner.component else None
        if workflow is None or not workflow.expose_in_context:
            logger.warning("Workflow %r is not exposed by %s", action.name, key)
            return
    else:
        owner = ctx
        workflow = ctx.component.workflows.get(action.name) if ctx.component else None
        if workflow is None:
            logger.warning("Workflow not found: %s", action.name)
            return

    # Parameters and callbacks belong to the caller; the body runs as the owner.
    parameters = _named_values(action.parameters, ctx, event)

    def run_callback(name: str, data: Any = None) -> None:
        body = action.callbacks.get(name)
        if body is None:
            logger.warning("Workflow %r has no callback %r", action.name, name)
            return
        execute(body, ctx, data, dispatch, depth + 1)

    target = dataclasses.replace(
        owner.with_overlay(Parameters=parameters),
        workflows=ctx.workflows,
        trail=ctx.trail,
    )
    key = f"{owner.owner_name}:{action.name}"
    with guard(ctx.workflows, key), ctx.trail.step("workflow", key):
        execute(workflow.actions, target, event, run_callback, depth + 1)


def _trigger_workflow_callback(action: TriggerWorkflowCallback, ctx: ActionContext, event, dispatch, depth) -> None:
    if dispatch is None:
        logger.warning("TriggerWorkflowCallback %r outside of a workflow", action.name)
        return
    dispatch(action.name, evaluate(action.data, ctx.formula_context(event)))


def _custom(action: Custom, ctx: ActionContext, event, dispatch, depth) -> None:
    package = action.package or ctx.package
    handler = ctx.registry.resolve_action(action.name, package)
    if handler is None:
        logger.warning("Action not found: %s", f"{package}/{action.name}" if package else action.name)
        return

    def trigger_action_event(name: str, data: Any = None, source_event: Any = None) -> None:
        body = action.events.get(name)
        if body is None:
            logger.warning("Action %r has no event %r", action.name, name)
            return
        execute(body, ctx, data, dispatch, depth + 1)

    args = _named_values(action.arguments, ctx, event)
    result = handler(args, CustomActionContext(ctx.root, trigger_action_event), event)
    _register_cleanup(result, ctx)


_EXECUTORS: dict[type, Callable[..., None]] = {
    SetVariable: _set_variable,
    TriggerEvent: _trigger_event,
    Switch: _switch,
    Fetch: _fetch,
    AbortFetch: _abort_fetch,
    Custom: _custom,
    SetURLParameter: _set_url_parameter,
    SetURLParameters: _set_url_parameters,
    TriggerWorkflow: _trigger_workflow,
    TriggerWorkflowCallback: _trigger_workflow_callback,
}


# ─── Helpers ─────────────────────────────────────────────────────────────────


def _named_values(named: tuple[NamedFormula, ...], ctx: ActionContext, event: Any) -> dict[str, Any]:
    fctx = ctx.formula_context(event)
    return {entry.name: evaluate(entry.formula, fctx) for entry in named if entry.name}


def _register_cleanup(result: Any, ctx: ActionContext) -> None:
    """Tie a user action's cleanup to the lifetime of the instance's container."""
    if result is None:
        return
    if callable(result):
        _on_destroy(ctx, result)
    elif isinstance(result, concurrent.futures.Future):

        def resolved(future: concurrent.futures.Future) -> None:
            if future.cancelled() or future.exception() is not None:
                return
            if callable(future.result()):
                _on_destroy(ctx, future.result())

        result.add_done_callback(resolved)
    elif inspect.isawaitable(result):
        _spawn(_await_cleanup(result, ctx), inner=result)


async def _await_cleanup(awaitable: Any, ctx: ActionContext) -> None:
    cleanup = await awaitable
    if callable(cleanup):
        _on_destroy(ctx, cleanup)


def _on_destroy(ctx: ActionContext, cleanup: Callable[[], Any]) -> None:
    if ctx.signal.destroyed:
        cleanup()
        return
    ctx.signal.subscribe(lambda _value: None, cleanup)


def _spawn(awaitable: Any, inner: Any = None) -> None:
    """Schedule a deferred result on the running event loop."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.warning("No running event loop; deferred action result dropped")
        for pending in (awaitable, inner):
            if inspect.iscoroutine(pending):
                pending.close()
        return
    task = asyncio.ensure_future(awaitable, loop=loop)
    _pending.add(task)
    task.add_done_callback(_task_done)


def _task_done(task: asyncio.Future) -> None:
    _pending.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error("Deferred action failed", exc_info=task.exception())
