"""Runtime context shared by the gateway's handlers.

Everything with process lifetime lives here instead of in module
globals, so a test can build as many isolated gateways as it likes and
``GatewayServer.shutdown`` has one object to tear down.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from webbot.engine.config import GatewayConfig
from webbot.engine.providers.base import ChatBackend
from webbot.engine.providers.registry import build_backend
from webbot.engine.runner import AgentRunner
from webbot.engine.tools.file_tools import build_default_registry
from webbot.engine.tools.registry import ToolRegistry
from webbot.gateway.session_registry import SessionRegistry
from webbot.shared.services.changelog import ChangeLog
from webbot.shared.services.path_locks import PathLockTable
from webbot.shared.services.persistence import SessionStore
from webbot.shared.services.snapshot import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class GatewayContext:
    config: GatewayConfig
    workspace: Path
    sessions: SessionRegistry
    snapshots: SnapshotStore
    changelog: ChangeLog
    tools: ToolRegistry
    runner: AgentRunner
    path_locks: PathLockTable

    @classmethod
    def from_config(
        cls,
        config: GatewayConfig,
        backend: ChatBackend | None = None,
    ) -> GatewayContext:
        """Wire up stores, tools and the runner from ``config``.

        ``backend`` overrides the configured provider (tests pass a
        scripted fake here).
        """
        workspace = config.workspace_path
        if not workspace.is_dir():
            workspace.mkdir(parents=True, exist_ok=True)
            logger.info("Created workspace directory %s", workspace)
        tools = build_default_registry()
        if backend is None:
            backend = build_backend(config)
        runner = AgentRunner(
            backend,
            tools,
            system_prompt=config.system_prompt,
            max_context_messages=config.max_context_messages,
            max_tool_rounds=config.max_tool_rounds,
        )
        ctx = cls(
            config=config,
            workspace=workspace,
            sessions=SessionRegistry(SessionStore(config.sessions_dir)),
            snapshots=SnapshotStore(
                config.snapshots_dir,
                retention=config.snapshot_retention,
                workspace=workspace,
            ),
            changelog=ChangeLog(config.changelog_path, retention=config.changelog_retention),
            tools=tools,
            runner=runner,
            path_locks=PathLockTable(),
        )
        logger.info(
            "GatewayContext ready workspace=%s data_dir=%s sessions=%d snapshots=%d",
            workspace, config.data_path, len(ctx.sessions), len(ctx.snapshots),
        )
        return ctx

    async def close(self) -> None:
        """Persist sessions and release the backend transport."""
        self.sessions.flush_all()
        await self.runner.backend.close()
