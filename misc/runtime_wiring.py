from __future__ import annotations

from config.settings import Settings
from anime.tracemoe import SauceFinder
from controller.attachments import AttachmentNormalizer
from controller.completion import CompletionDispatcher
from controller.completion import ImageAnnotator
from controller.reply_cycle import ReplyScheduler
from controller.reply_service import ChatReplyService
from conversations.lifecycle import ConversationLifecycle
from feeds.service import FeedService
from jobs.service import tick_loop
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_chat import register as register_chat
from misc.commands.commands_feeds import register as register_feeds
from misc.commands.commands_sauce import register as register_sauce
from misc.commands.commands_webhooks import register as register_webhooks
from misc.events_runtime import register_runtime_events
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps
from webhooks.app import create_webhook_app
from webhooks.app import start_webhook_server
from webhooks.models import WebhookDeps
from webhooks.registry import WebhookRegistry
from webhooks.store import list_webhook_routes_sync


def wire_bot_runtime(
    bot,
    *,
    settings: Settings,
    client,
    db_lock,
    db_conn,
    webhook_registry: WebhookRegistry,
    webhook_deps: WebhookDeps,
) -> None:
    def user_is_owner(user) -> bool:
        return int(getattr(user, "id", 0) or 0) in settings.owner_user_ids

    sauce = SauceFinder()
    dispatcher = CompletionDispatcher(
        client,
        model=settings.openai_model,
        temperature=settings.openai_temperature,
        db_conn=db_conn,
        db_lock=db_lock,
        annotator=ImageAnnotator(
            client,
            model=settings.openai_vision_model,
            scene_finder=sauce if settings.anime_context_enabled else None,
        ),
    )
    lifecycle = ConversationLifecycle(
        db_conn=db_conn,
        db_lock=db_lock,
        prune_interval_hours=settings.prune_interval_hours,
    )
    feeds = FeedService(db_conn=db_conn, db_lock=db_lock)
    reply_service = ChatReplyService(
        dispatcher=dispatcher,
        normalizer=AttachmentNormalizer(db_conn=db_conn, db_lock=db_lock),
        lifecycle=lifecycle,
        default_instruction=settings.persona.instruction,
        tokens_per_message=settings.tokens_per_message,
        history_limit=settings.history_limit,
        delay_seconds=settings.response_delay_seconds,
    )

    command_deps = CommandDeps(
        db_lock=db_lock,
        db_conn=db_conn,
        dispatcher=dispatcher,
        lifecycle=lifecycle,
        default_instruction=settings.persona.instruction,
        thread_prefix=settings.persona.thread_prefix,
        tokens_per_message=settings.tokens_per_message,
        feeds=feeds,
        base_url=settings.base_url,
        list_webhook_routes_sync=list_webhook_routes_sync,
        sauce=sauce,
    )
    command_gates = CommandGates(user_is_owner=user_is_owner)

    register_chat(bot, deps=command_deps, gates=command_gates)
    register_feeds(bot, deps=command_deps, gates=command_gates)
    register_webhooks(bot, deps=command_deps, gates=command_gates)
    register_sauce(bot, deps=command_deps, gates=command_gates)

    async def run_tick_loop():
        return await tick_loop(
            bot,
            lifecycle=lifecycle,
            feeds=feeds,
            rss_channel_id=settings.rss_channel_id,
            interval_seconds=settings.tick_seconds,
        )

    routers = {}

    async def reconcile_webhooks():
        try:
            routers["webhooks"] = await webhook_registry.reconcile()
        except Exception as e:
            print(f"[Webhooks] route reconciliation failed; aborting startup: {e}")
            raise

    # Runs inside the bot loop before the gateway connects; a failure stops bot.run().
    bot.setup_hook = reconcile_webhooks

    def start_webhooks():
        return start_webhook_server(create_webhook_app(routers["webhooks"], webhook_deps), port=settings.port)

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            reply_service=reply_service,
            reply_scheduler=ReplyScheduler(),
            thread_prefix=settings.persona.thread_prefix,
        ),
        boot=RuntimeBootDeps(
            bot_name=settings.persona.name,
            invite_url=settings.invite_url,
            tick_loop_func=run_tick_loop,
            start_webhook_server_func=start_webhooks,
        ),
    )
