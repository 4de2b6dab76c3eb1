"""
Minimal working defaults for scaffold files the builder omitted, and the
responsive CSS blocks injected when a project has none.
"""

from __future__ import annotations

from ...models.request import OutputStack

REACT_SCAFFOLD = {
    "src/main.tsx": """import React from 'react';
import ReactDOM from 'react-dom/client';
import App from './App';
import './styles.css';

ReactDOM.createRoot(document.getElementById('root')!).render(
  <React.StrictMode>
    <App />
  </React.StrictMode>
);
""",
    "src/App.tsx": """export default function App() {
  return (
    <main className="min-h-screen bg-slate-950 text-slate-100 p-6">
      <div className="mx-auto max-w-5xl rounded-2xl border border-slate-800 bg-slate-900 p-6">
        <h1 className="text-2xl font-bold tracking-tight">Generated App</h1>
        <p className="mt-2 text-slate-400">This placeholder is replaced by the requested UI.</p>
      </div>
    </main>
  );
}
""",
    "src/styles.css": """@import "tailwindcss";

:root {
  color-scheme: dark;
}

body {
  margin: 0;
  font-family: Inter, ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, sans-serif;
}
""",
    "index.html": """<!doctype html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>Generated App</title>
  </head>
  <body>
    <div id="root"></div>
    <script type="module" src="/src/main.tsx"></script>
  </body>
</html>
""",
    "tailwind.config.js": """/** @type {import('tailwindcss').Config} */
export default {
  content: ['./index.html', './src/**/*.{js,ts,jsx,tsx}'],
  theme: { extend: {} },
  plugins: [],
};
""",
    "postcss.config.js": """export default {
  plugins: {
    '@tailwindcss/postcss': {},
  },
};
""",
}

VANILLA_SCAFFOLD = {
    "index.html": """<!doctype html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>Generated App</title>
    <link rel="stylesheet" href="styles.css" />
  </head>
  <body>
    <main id="app"></main>
    <script src="app.js"></script>
  </body>
</html>
""",
    "styles.css": "body { margin: 0; font-family: system-ui, sans-serif; }\n",
    "app.js": "document.getElementById('app').textContent = 'Generated app';\n",
}

SCAFFOLDS = {OutputStack.REACT_TAILWIND: REACT_SCAFFOLD, OutputStack.VANILLA: VANILLA_SCAFFOLD}

POSTCSS_CONFIG = REACT_SCAFFOLD["postcss.config.js"]

OVERFLOW_GUARD_CSS = """

/* WebForge responsive overflow guard */
html, body, #root {
  max-width: 100%;
  overflow-x: hidden;
}

img, svg, canvas, video {
  max-width: 100%;
  height: auto;
}
"""

BREAKPOINT_BASELINE_CSS = """

/* WebForge responsive breakpoint baseline */
:root {
  --wf-content-max: 100%;
}

main, .container, [data-layout-root="true"] {
  width: min(100%, var(--wf-content-max));
  margin-inline: auto;
}

@media (min-width: 768px) {
  :root {
    --wf-content-max: 768px;
  }
}

@media (min-width: 1280px) {
  :root {
    --wf-content-max: 1280px;
  }
}
"""
