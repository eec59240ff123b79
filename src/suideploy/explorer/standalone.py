# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of SuiDeploy - see LICENSE

"""
Standalone explorer: a tiny Express app that proxies two JSON-RPC calls.

Used when the official explorer cannot be installed or built. The page it
serves polls ``/api/chain-info`` and ``/api/system-state``.
"""

from __future__ import annotations

import json, os
from pathlib import Path
from typing import List

from ..utils import config as CFG
from ..utils.helpers import atomic_write_text
from ..utils.sui_logging import get_ctx_logger

log = get_ctx_logger("suideploy.explorer.standalone", stage="explorer")

PACKAGE_JSON = {
    "name": "sui-explorer-standalone",
    "version": "1.0.0",
    "description": "Simple Sui blockchain explorer",
    "main": "server.js",
    "scripts": {"start": "node server.js", "dev": "node server.js"},
    "dependencies": {"express": "^4.18.2", "axios": "^1.6.0", "cors": "^2.8.5"},
}

SERVER_JS = """\
const express = require('express');
const axios = require('axios');
const cors = require('cors');
const path = require('path');

const app = express();
const PORT = process.env.PORT || __PORT__;
const RPC_URL = process.env.NEXT_PUBLIC_RPC_URL || '__RPC_URL__';

app.use(cors());
app.use(express.json());
app.use(express.static(path.join(__dirname, 'public')));

async function rpc(method, params = []) {
    const response = await axios.post(RPC_URL, { jsonrpc: '2.0', id: 1, method, params });
    return response.data;
}

app.get('/api/system-state', async (req, res) => {
    try {
        res.json(await rpc('suix_getLatestSuiSystemState'));
    } catch (error) {
        res.status(500).json({ error: 'Failed to fetch system state' });
    }
});

app.get('/api/chain-info', async (req, res) => {
    try {
        res.json(await rpc('sui_getChainIdentifier'));
    } catch (error) {
        res.status(500).json({ error: 'Failed to fetch chain info' });
    }
});

app.get('/health', (req, res) => {
    res.json({ status: 'healthy', timestamp: new Date().toISOString() });
});

app.get('/', (req, res) => {
    res.sendFile(path.join(__dirname, 'public', 'index.html'));
});

app.listen(PORT, '0.0.0.0', () => {
    console.log(`Sui Explorer running on port ${PORT}`);
    console.log(`RPC URL: ${RPC_URL}`);
});
"""

INDEX_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>__TITLE__ Explorer</title>
<style>
 body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; margin: 0; padding: 20px;
        background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); min-height: 100vh; color: white; }
 .container { max-width: 1200px; margin: 0 auto; background: rgba(255,255,255,0.1); border-radius: 20px; padding: 30px; }
 .grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(300px, 1fr)); gap: 20px; }
 .card { background: rgba(255,255,255,0.1); border-radius: 15px; padding: 25px; text-align: center; }
 .stat-number { font-size: 2em; font-weight: bold; color: #4facfe; word-break: break-all; }
 .info-box { background: rgba(0,255,127,0.2); border-left: 4px solid #00ff7f; padding: 15px; margin: 20px 0; }
</style>
</head>
<body>
<div class="container">
  <h1>__TITLE__ Explorer</h1>
  <div class="info-box">
    1% daily rewards for delegators<br>
    1.5% daily rewards for validators
  </div>
  <div class="grid">
    <div class="card"><div class="stat-number" id="chainId">Loading...</div><div>Chain ID</div></div>
    <div class="card"><div class="stat-number" id="epoch">Loading...</div><div>Current Epoch</div></div>
    <div class="card"><div class="stat-number" id="validators">Loading...</div><div>Active Validators</div></div>
  </div>
  <p>RPC: __RPC_URL__</p>
</div>
<script>
async function fetchData() {
  try {
    const chain = await (await fetch('/api/chain-info')).json();
    if (chain.result) document.getElementById('chainId').textContent = chain.result;
    const sys = await (await fetch('/api/system-state')).json();
    if (sys.result) {
      document.getElementById('epoch').textContent = sys.result.epoch || 'N/A';
      document.getElementById('validators').textContent =
        sys.result.activeValidators ? sys.result.activeValidators.length : 'N/A';
    }
  } catch (error) {
    for (const id of ['chainId', 'epoch', 'validators']) document.getElementById(id).textContent = 'Error';
  }
}
document.addEventListener('DOMContentLoaded', fetchData);
setInterval(fetchData, 15000);
</script>
</body>
</html>
"""


def scaffold_standalone(target_dir: str | os.PathLike, rpc_url: str = CFG.RPC_URL,
                        port: int = CFG.PORT_EXPLORER, title: str = CFG.NETWORK_LABEL) -> List[Path]:
    target = Path(target_dir)
    server = SERVER_JS.replace("__PORT__", str(int(port))).replace("__RPC_URL__", rpc_url)
    index = INDEX_HTML.replace("__TITLE__", title).replace("__RPC_URL__", rpc_url)
    written = [
        atomic_write_text(target / "package.json", json.dumps(PACKAGE_JSON, indent=2) + "\n"),
        atomic_write_text(target / "server.js", server),
        atomic_write_text(target / "public" / "index.html", index),
    ]
    log.info("[explorer] Standalone explorer scaffolded in %s", target)
    return written
