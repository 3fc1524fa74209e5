from __future__ import annotations

import importlib
import importlib.util
import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from scripts.ssh_deploy.run_log import logger

DEFAULT_HOOKS_FILE = "deploy_customizations.py"


@runtime_checkable
class DeployHooksProtocol(Protocol):
    """Protocol defining the available hooks.
    Implementations can implement any subset of these.
    """
    def pre_stage(self, ctx: Any, stage_name: str) -> None: ...
    def post_stage(self, ctx: Any, result: Any) -> None: ...
    def on_error(self, ctx: Any, result: Any) -> None: ...
    def post_deploy(self, ctx: Any, report: Any) -> None: ...


class DeployHooks:
    """Wrapper that holds the loaded hooks object (if any) and safely calls methods."""
    def __init__(self, impl: Any | None, soft_fail: bool = False):
        self._impl = impl
        self._soft_fail = soft_fail

    def call(self, hook_name: str, *args, **kwargs) -> Any:
        if not self._impl:
            return None

        method = getattr(self._impl, hook_name, None)
        if not method:
            # Hook not implemented, no-op
            return None

        try:
            return method(*args, **kwargs)
        except Exception as e:
            if self._soft_fail:
                logger.warning(f"⚠️  [hook] Hook '{hook_name}' failed: {e} (soft-fail enabled)")
                return None
            logger.error(f"❌ [hook] Hook '{hook_name}' failed: {e}")
            raise


def load_hooks(config_root: Path, module_path: str | None = None, soft_fail: bool = False) -> DeployHooks:
    """Load hooks from a module.

    Resolution order:
    1. Explicit module path (CLI flag or DEPLOY_HOOKS_MODULE) -> Must exist or error.
    2. Default '<config_root>/deploy_customizations.py' -> If exists, load. Else no-op.

    File paths are loaded by location to avoid PYTHONPATH issues.
    """
    target_path = module_path

    if not target_path:
        default_file = config_root / DEFAULT_HOOKS_FILE
        if not default_file.exists():
            return DeployHooks(None, soft_fail=soft_fail)
        target_path = str(default_file.resolve())

    logger.info(f"🪝 [hooks] Loading hooks from: {target_path}")

    try:
        if target_path.endswith(".py") or "/" in target_path or "\\" in target_path:
            path_obj = Path(target_path).resolve()
            if not path_obj.exists():
                raise FileNotFoundError(f"Hook module not found at: {path_obj}")

            spec = importlib.util.spec_from_file_location("deploy_customizations", path_obj)
            if spec and spec.loader:
                module = importlib.util.module_from_spec(spec)
                sys.modules["deploy_customizations"] = module
                spec.loader.exec_module(module)
            else:
                raise ImportError(f"Could not load spec from {path_obj}")
        else:
            module = importlib.import_module(target_path)

        if hasattr(module, "get_hooks"):
            hooks_impl = module.get_hooks()
        else:
            # Assume module itself is the hooks object (standalone functions)
            hooks_impl = module

        return DeployHooks(hooks_impl, soft_fail=soft_fail)

    except Exception as e:
        if soft_fail:
            logger.warning(f"⚠️  [hooks] Failed to load hooks from {target_path}: {e} (soft-fail enabled)")
            return DeployHooks(None, soft_fail=soft_fail)
        raise ImportError(f"Failed to load hooks from {target_path}: {e}") from e
