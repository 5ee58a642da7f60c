"""Dashboard HTML with inline CSS and vanilla JS."""


def get_dashboard_html() -> str:
    return """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>NexBuilder</title>
<style>
  :root {
    --bg: #0f172a; --surface: #1e293b; --border: #334155;
    --text: #e2e8f0; --text-muted: #94a3b8; --text-dim: #64748b;
    --pending: #94a3b8; --in_progress: #38bdf8; --completed: #4ade80;
    --failed: #f87171; --blocked: #fbbf24; --accent: #818cf8;
  }
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Helvetica, Arial, sans-serif;
         background: var(--bg); color: var(--text); line-height: 1.5; }
  .container { max-width: 1100px; margin: 0 auto; padding: 24px 16px; }

  header { display: flex; justify-content: space-between; align-items: center;
           padding-bottom: 16px; border-bottom: 1px solid var(--border); margin-bottom: 24px; }
  header h1 { font-size: 20px; font-weight: 600; }
  header a { color: var(--accent); font-size: 14px; text-decoration: none; margin-left: 12px; }

  .plan-form { display: flex; gap: 8px; margin-bottom: 20px; }
  .plan-form input { flex: 1; background: var(--surface); color: var(--text); border: 1px solid var(--border);
                     padding: 8px 12px; border-radius: 6px; font-size: 14px; }
  button { background: var(--surface); color: var(--text); border: 1px solid var(--border);
           padding: 6px 12px; border-radius: 6px; cursor: pointer; font-size: 13px; }
  button:hover { border-color: var(--accent); }
  button:disabled { opacity: 0.5; cursor: default; }

  .summary { display: flex; gap: 16px; align-items: center; margin-bottom: 24px; flex-wrap: wrap; }
  .stat { display: flex; align-items: center; gap: 6px; font-size: 14px; }
  .dot { width: 10px; height: 10px; border-radius: 50%; display: inline-block; }
  .progress-bar { flex: 1; min-width: 120px; height: 8px; background: var(--surface);
                  border-radius: 4px; overflow: hidden; border: 1px solid var(--border); }
  .progress-bar .fill { height: 100%; background: var(--completed); transition: width 0.3s; }

  .board { display: grid; grid-template-columns: repeat(5, 1fr); gap: 12px; }
  .column h3 { font-size: 12px; text-transform: uppercase; color: var(--text-muted); margin-bottom: 8px; }
  .task-card { background: var(--surface); border: 1px solid var(--border);
               border-radius: 8px; padding: 10px 12px; margin-bottom: 8px; font-size: 13px; }
  .task-title { font-weight: 600; }
  .task-id, .role { font-size: 11px; color: var(--text-dim); font-family: monospace; }
  .deps { font-size: 11px; color: var(--text-dim); margin-top: 4px; }
  .actions { margin-top: 8px; display: flex; gap: 6px; }

  .log { margin-top: 28px; font-size: 12px; color: var(--text-muted); }
  .log div { padding: 2px 0; border-bottom: 1px solid var(--border); }
  .empty { text-align: center; padding: 48px; color: var(--text-muted); }
  .error { color: var(--failed); margin-bottom: 12px; font-size: 13px; }
</style>
</head>
<body>
<div class="container">
  <header>
    <h1>NexBuilder</h1>
    <div><a href="/preview" target="_blank">Preview</a><a href="/api/export.zip">Download zip</a></div>
  </header>
  <form class="plan-form" onsubmit="createPlan(event)">
    <input id="idea" placeholder="Describe the app you want to build">
    <button type="submit">Plan</button>
  </form>
  <div id="error" class="error"></div>
  <div id="content"><div class="empty">Loading...</div></div>
</div>
<script>
const STATUSES = ['pending', 'in_progress', 'blocked', 'completed', 'failed'];

async function api(method, url, body) {
  const resp = await fetch(url, {
    method,
    headers: body ? {'Content-Type': 'application/json'} : {},
    body: body ? JSON.stringify(body) : undefined,
  });
  const data = await resp.json().catch(() => ({}));
  if (!resp.ok) throw new Error(data.error || resp.statusText);
  return data;
}

function showError(e) {
  document.getElementById('error').textContent = e ? e.message : '';
}

async function createPlan(ev) {
  ev.preventDefault();
  const idea = document.getElementById('idea').value.trim();
  if (!idea) return;
  try { await api('POST', '/api/project', {prompt: idea}); showError(null); }
  catch (e) { showError(e); }
  load();
}

async function act(method, url) {
  try { await api(method, url); showError(null); }
  catch (e) { showError(e); }
  load();
}

async function load() {
  const content = document.getElementById('content');
  let project, summary, ready;
  try {
    [project, summary, ready] = await Promise.all([
      api('GET', '/api/project'), api('GET', '/api/summary'), api('GET', '/api/tasks/ready'),
    ]);
  } catch (e) {
    content.innerHTML = '<div class="empty"><h3>No project yet</h3><p>Describe an idea above or run <code>nb plan</code></p></div>';
    return;
  }
  const readyIds = new Set(ready.map(t => t.id));
  const c = summary.counts;
  let html = `<h2>${esc(project.name)}</h2><div class="summary">`;
  for (const s of STATUSES) {
    html += `<span class="stat"><span class="dot" style="background:var(--${s})"></span> ${c[s]} ${s.replace('_', ' ')}</span>`;
  }
  html += `<div class="progress-bar"><div class="fill" style="width:${summary.progress_pct}%"></div></div>
    <span>${summary.progress_pct}%</span></div><div class="board">`;
  for (const s of STATUSES) {
    html += `<div class="column"><h3>${s.replace('_', ' ')}</h3>`;
    for (const t of project.tasks.filter(t => t.status === s)) html += renderTask(t, readyIds.has(t.id));
    html += '</div>';
  }
  html += '</div><div class="log"><h3>Activity</h3>';
  for (const e of project.activityLog.slice(-20).reverse()) {
    html += `<div>${new Date(e.timestamp).toLocaleTimeString()} [${esc(e.status)}] ${esc(e.taskTitle)} ${esc(e.details || '')}</div>`;
  }
  content.innerHTML = html + '</div>';
}

function renderTask(task, ready) {
  let actions = '';
  if (ready) actions += `<button onclick="act('POST', '/api/tasks/${task.id}/execute')">Run</button>`;
  if (task.status === 'pending' || task.status === 'blocked') {
    actions += `<button onclick="act('POST', '/api/tasks/${task.id}/split')">Split</button>`;
  }
  if (task.status === 'failed') {
    actions += `<button onclick="act('POST', '/api/tasks/${task.id}/execute?retry=1')">Retry</button>`;
  }
  const deps = task.dependencies.length ? `<div class="deps">after ${task.dependencies.map(esc).join(', ')}</div>` : '';
  return `<div class="task-card">
    <div class="task-title">${esc(task.title)}</div>
    <span class="task-id">${esc(task.id)}</span> <span class="role">${esc(task.agentRole)}</span>
    ${deps}${actions ? `<div class="actions">${actions}</div>` : ''}
  </div>`;
}

function esc(s) {
  if (!s) return '';
  const d = document.createElement('div');
  d.textContent = s;
  return d.innerHTML;
}

load();
setInterval(load, 5000);
</script>
</body>
</html>"""
