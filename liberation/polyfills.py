"""Replacement modules for platform hooks that cleaning leaves dangling."""

import re
from dataclasses import dataclass

from .config import LiberationConfig
from .detect import FileRole, identify_role
from .logging import get_logger
from .models import FileEntry, Polyfill, ProjectSnapshot
from .patterns import IMPORT_BINDINGS, parse_bindings

logger = get_logger("polyfills")


@dataclass(frozen=True)
class HookTemplate:
    name: str
    symbol: str
    content: str


USE_MOBILE = """\
import { useState, useEffect } from 'react';

/**
 * Detects a mobile-sized viewport.
 * Generated by liberator.
 */
export function useIsMobile() {
  const [isMobile, setIsMobile] = useState(false);

  useEffect(() => {
    const checkMobile = () => setIsMobile(window.innerWidth < 768);
    checkMobile();
    window.addEventListener('resize', checkMobile);
    return () => window.removeEventListener('resize', checkMobile);
  }, []);

  return isMobile;
}

export default useIsMobile;
"""

USE_TOAST = """\
import { useState, useCallback } from 'react';

/**
 * Minimal toast notification state.
 * Generated by liberator.
 */
export interface Toast {
  id: string;
  title?: string;
  description?: string;
  variant?: 'default' | 'destructive';
}

let toastCount = 0;

export function useToast() {
  const [toasts, setToasts] = useState<Toast[]>([]);

  const dismiss = useCallback((id: string) => {
    setToasts(prev => prev.filter(t => t.id !== id));
  }, []);

  const toast = useCallback(({ title, description, variant = 'default' }: Omit<Toast, 'id'>) => {
    const id = String(++toastCount);
    setToasts(prev => [...prev, { id, title, description, variant }]);
    setTimeout(() => dismiss(id), 5000);
    return { id, dismiss: () => dismiss(id) };
  }, [dismiss]);

  return { toast, toasts, dismiss };
}

export default useToast;
"""

USE_SIDEBAR = """\
import { useState, createContext, useContext } from 'react';

/**
 * Sidebar open/closed state, shared through context when a provider exists.
 * Generated by liberator.
 */
export interface SidebarState {
  isOpen: boolean;
  toggle: () => void;
  open: () => void;
  close: () => void;
}

const SidebarContext = createContext<SidebarState | null>(null);

export function useSidebar(): SidebarState {
  const context = useContext(SidebarContext);
  const [isOpen, setIsOpen] = useState(true);

  if (context) return context;

  return {
    isOpen,
    toggle: () => setIsOpen(prev => !prev),
    open: () => setIsOpen(true),
    close: () => setIsOpen(false),
  };
}

export { SidebarContext };
export default useSidebar;
"""

HOOK_CATALOG: tuple[HookTemplate, ...] = (
    HookTemplate("use-mobile", "useIsMobile", USE_MOBILE),
    HookTemplate("use-toast", "useToast", USE_TOAST),
    HookTemplate("use-sidebar", "useSidebar", USE_SIDEBAR),
)


class PolyfillSynthesizer:
    """Emits a standalone module for every catalog hook still referenced."""

    def __init__(self, config: LiberationConfig, catalog: tuple[HookTemplate, ...] = HOOK_CATALOG):
        self.config = config
        self.catalog = catalog
        self.compat_dir = config.compat_dir.strip("/")
        tail = self.compat_dir[4:] if self.compat_dir.startswith("src/") else self.compat_dir
        self._reference = {
            hook.name: re.compile(rf"{re.escape(tail)}/{re.escape(hook.name)}(?![\w-])")
            for hook in catalog
        }

    def module_path(self, hook: HookTemplate) -> str:
        return f"{self.compat_dir}/{hook.name}.ts"

    @property
    def index_path(self) -> str:
        return f"{self.compat_dir}/index.ts"

    def needed_hooks(self, files: ProjectSnapshot) -> list[HookTemplate]:
        """Catalog hooks referenced by any source file outside the compat directory."""
        needed: list[HookTemplate] = []
        for entry in files.entries():
            if not entry.is_text or entry.path.startswith(self.compat_dir + "/"):
                continue
            if identify_role(entry.path) is not FileRole.SOURCE:
                continue
            text = entry.text
            imported = self._proprietary_symbols(text)
            for hook in self.catalog:
                if hook in needed:
                    continue
                if self._reference[hook.name].search(text) or hook.symbol in imported:
                    needed.append(hook)
        return [hook for hook in self.catalog if hook in needed]

    def _proprietary_symbols(self, text: str) -> set[str]:
        symbols: set[str] = set()
        for m in IMPORT_BINDINGS.finditer(text):
            if self.config.platform_for_specifier(m.group("spec")) is not None:
                symbols.update(parse_bindings(m.group("bindings")))
        return symbols

    def synthesize(self, files: ProjectSnapshot) -> list[Polyfill]:
        """Polyfills for needed hooks whose module is not already present."""
        polyfills = [
            Polyfill(
                source_symbol=hook.symbol,
                generated_path=self.module_path(hook),
                generated_content=hook.content,
            )
            for hook in self.needed_hooks(files)
            if self.module_path(hook) not in files
        ]
        for polyfill in polyfills:
            logger.info("Generated %s for %s", polyfill.generated_path, polyfill.source_symbol)
        return polyfills

    def render_index(self, polyfills: list[Polyfill]) -> str:
        lines = []
        for polyfill in polyfills:
            module = polyfill.generated_path.rsplit("/", 1)[-1].removesuffix(".ts")
            lines.append(f"export * from './{module}';")
        return "\n".join(lines) + "\n"

    def apply(self, files: ProjectSnapshot) -> tuple[ProjectSnapshot, list[Polyfill]]:
        """Add generated modules (and their index) to ``files``.

        Returns the unchanged set and an empty list when nothing is needed.
        """
        polyfills = self.synthesize(files)
        if not polyfills:
            return files, []

        entries = [FileEntry(p.generated_path, p.generated_content) for p in polyfills]
        if self.index_path not in files:
            entries.append(FileEntry(self.index_path, self.render_index(polyfills)))
        return files.with_files(entries), polyfills
