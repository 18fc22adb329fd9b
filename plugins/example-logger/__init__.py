"""Logs platform activity to the plugin log and keeps simple per-hook counters."""

COUNTER_NAMESPACE = "counters"


def _log(ctx, message, metadata):
    level = ctx.config.get("logLevel", "info")
    getattr(ctx.logger, level, ctx.logger.info)(message, metadata)


def _count(ctx, hook):
    if not ctx.config.get("countEvents", True):
        return
    current = ctx.data.get(hook, namespace=COUNTER_NAMESPACE) or 0
    ctx.data.set(hook, current + 1, namespace=COUNTER_NAMESPACE)


def _handler(hook, message):
    def handle(ctx, payload):
        _log(ctx, message, payload)
        _count(ctx, hook)
    return handle


def on_enable(ctx):
    ctx.logger.info("Example logger enabled")


def on_disable(ctx):
    ctx.logger.info("Example logger disabled")


def get_counters(ctx, params):
    return {key: ctx.data.get(key, namespace=COUNTER_NAMESPACE) for key in ctx.data.list(COUNTER_NAMESPACE)}


def reset_counters(ctx, params):
    return {"deleted": ctx.data.clear(COUNTER_NAMESPACE)}


hooks = {
    "submission.created": _handler("submission.created", "New submission"),
    "submission.statusChanged": _handler("submission.statusChanged", "Submission status changed"),
    "review.submitted": _handler("review.submitted", "Review submitted"),
    "review.allCompleted": _handler("review.allCompleted", "Submission fully reviewed"),
    "event.published": _handler("event.published", "Event published"),
}

actions = {
    "counters": get_counters,
    "reset-counters": reset_counters,
}
