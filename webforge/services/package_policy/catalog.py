"""
Package catalog: approved packages, aliases, heavy packages and base manifests.
"""

from __future__ import annotations

from ...models.project import PackageManifest
from ...models.request import OutputStack

HEAVY_PACKAGES = frozenset(
    {
        "monaco-editor",
        "@monaco-editor/react",
        "@mui/x-data-grid",
        "ag-grid-react",
        "ag-grid-community",
        "handsontable",
        "@handsontable/react",
        "react-data-grid",
        "fabric",
        "konva",
        "react-konva",
        "three",
        "@react-three/fiber",
        "@react-three/drei",
        "pptxgenjs",
    }
)

PACKAGE_ALIASES = {
    "react-table": "@tanstack/react-table",
    "chartjs": "chart.js",
    "react-chartjs": "react-chartjs-2",
}

APPROVED_PACKAGES = frozenset(
    {
        # core runtime
        "react",
        "react-dom",
        "react-router-dom",
        # state and utilities
        "zustand",
        "clsx",
        "tailwind-merge",
        "date-fns",
        "dayjs",
        "lodash",
        "zod",
        "axios",
        "@tanstack/react-query",
        "@tanstack/react-table",
        # ui kits and icons
        "react-icons",
        "lucide-react",
        "framer-motion",
        "@mui/material",
        "@mui/icons-material",
        "@emotion/react",
        "@emotion/styled",
        "antd",
        "@chakra-ui/react",
        "@headlessui/react",
        "@heroicons/react",
        "@floating-ui/react",
        "@dnd-kit/core",
        "@dnd-kit/sortable",
        # forms
        "react-hook-form",
        "@hookform/resolvers",
        "yup",
        "react-select",
        # charts and data
        "chart.js",
        "react-chartjs-2",
        "recharts",
        "d3",
        "react-virtualized",
        "react-window",
        "ag-grid-react",
        "ag-grid-community",
        "@mui/x-data-grid",
        "react-data-grid",
        "handsontable",
        "@handsontable/react",
        # documents and canvases
        "react-pdf",
        "pdfjs-dist",
        "quill",
        "react-quill",
        "@tiptap/react",
        "@tiptap/starter-kit",
        "slate",
        "slate-react",
        "fabric",
        "konva",
        "react-konva",
        "three",
        "@react-three/fiber",
        "@react-three/drei",
        # toolchain
        "tailwindcss",
        "@tailwindcss/postcss",
        "postcss",
        "autoprefixer",
        "vite",
        "@vitejs/plugin-react",
        "typescript",
    }
)


def resolve_alias(name: str) -> str:
    return PACKAGE_ALIASES.get(name, name)


def is_known_package(name: str) -> bool:
    """Approved, or a type-definitions package."""
    return name in APPROVED_PACKAGES or name.startswith("@types/")


def base_manifest(stack: OutputStack) -> PackageManifest:
    """Fresh base manifest for a stack."""
    if stack is OutputStack.REACT_TAILWIND:
        return PackageManifest(
            framework=stack.value,
            entry="/src/main.tsx",
            scripts={"dev": "vite", "build": "vite build", "preview": "vite preview"},
            dependencies={"react": "^19.2.0", "react-dom": "^19.2.0"},
            dev_dependencies={
                "typescript": "^5.8.0",
                "vite": "^5.4.0",
                "@vitejs/plugin-react": "^4.3.0",
                "tailwindcss": "^4.1.0",
                "@tailwindcss/postcss": "^4.1.0",
            },
        )
    return PackageManifest(
        framework=stack.value,
        entry="/index.html",
        scripts={"dev": "npx serve ."},
    )
