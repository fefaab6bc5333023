from __future__ import annotations

import asyncio
from typing import Any

from aiohttp import web

from shorts_sim.data.snapshot_store import SnapshotStore
from shorts_sim.infra.log import get_logger

DRIVER_KEY = web.AppKey("driver", object)
STORE_KEY = web.AppKey("store", object)

HTML = """<!doctype html><html><head><meta charset='utf-8'><title>Shorts Simulator</title></head>
<body style='font-family:system-ui;background:#060b16;color:#dbe4ff;padding:16px'>
<h2>Shorts Simulator</h2>
<div id='markets'></div>
<pre id='out'>loading...</pre>
<script>
async function place(market,direction,stake){
  const r=await fetch('/api/positions',{method:'POST',headers:{'Content-Type':'application/json'},
    body:JSON.stringify({market,direction,stake})});
  const j=await r.json();
  if(!j.ok){alert('rejected: '+j.reason);}
  tick();
}
function render(j){
  const el=document.getElementById('markets');
  el.innerHTML='';
  for(const m of (j.markets||[])){
    const row=document.createElement('div');
    row.style.margin='6px 0';
    const rnd=m.round||{state:'-',time_remaining_ms:0};
    row.textContent=m.label+' '+rnd.state+' '+(rnd.time_remaining_ms/1000).toFixed(1)+'s up '+m.quotes.up.toFixed(2)+' down '+m.quotes.down.toFixed(2)+' ';
    for(const side of ['up','down']){
      for(const stake of (j.bet_amounts||[])){
        const b=document.createElement('button');
        b.textContent=side+' '+stake;
        b.onclick=()=>place(m.key,side,stake);
        row.appendChild(b);
      }
    }
    el.appendChild(row);
  }
}
async function tick(){
  try{
    const r=await fetch('/api',{cache:'no-store'});
    const j=await r.json();
    render(j);
    document.getElementById('out').textContent=JSON.stringify(j,null,2);
  }catch(e){document.getElementById('out').textContent='dashboard error: '+e;}
}
setInterval(tick,1000);tick();
</script>
</body></html>"""


def _parse_intent(body: Any) -> tuple[str, str, float] | None:
    if not isinstance(body, dict):
        return None
    market = body.get("market")
    direction = body.get("direction")
    stake = body.get("stake")
    if not isinstance(market, str) or not isinstance(direction, str):
        return None
    if isinstance(stake, bool) or not isinstance(stake, (int, float)):
        return None
    return market, direction.strip().lower(), float(stake)


async def handle_html(_req: web.Request) -> web.Response:
    return web.Response(text=HTML, content_type="text/html")


async def handle_api(req: web.Request) -> web.Response:
    driver = req.app[DRIVER_KEY]
    if driver is not None:
        payload = driver.engine.snapshot()
    else:
        payload = req.app[STORE_KEY].read()
    return web.json_response(payload, headers={"Cache-Control": "no-store"})


async def handle_place(req: web.Request) -> web.Response:
    driver = req.app[DRIVER_KEY]
    if driver is None:
        return web.json_response({"ok": False, "reason": "read_only_dashboard"}, status=503)
    try:
        body = await req.json()
    except ValueError:
        body = None
    intent = _parse_intent(body)
    if intent is None:
        return web.json_response({"ok": False, "reason": "malformed_intent"}, status=400)

    market, direction, stake = intent
    result = await driver.place(market, direction, stake)
    if not result.ok:
        return web.json_response({"ok": False, "reason": result.reason}, status=409)
    pos = result.position
    return web.json_response(
        {
            "ok": True,
            "reason": result.reason,
            "position": {
                "id": pos.id,
                "market": pos.market_key,
                "round_id": pos.round_id,
                "direction": pos.direction.value,
                "amount": pos.amount,
                "entry_price": pos.entry_price,
                "entry_quote": pos.entry_quote,
                "shares": pos.shares,
            },
        }
    )


def build_app(*, driver=None, store: SnapshotStore | None = None) -> web.Application:
    """Embedded mode serves the live engine; external mode serves the last snapshot read-only."""
    if driver is None and store is None:
        raise ValueError("dashboard needs a driver or a snapshot store")
    app = web.Application()
    app[DRIVER_KEY] = driver
    app[STORE_KEY] = store
    app.router.add_get("/", handle_html)
    app.router.add_get("/api", handle_api)
    app.router.add_post("/api/positions", handle_place)
    return app


async def run_dashboard(*, port: int, log_level: str = "INFO", driver=None, data_dir: str | None = None) -> None:
    log = get_logger("shorts_sim.dashboard", log_level)
    store = SnapshotStore(data_dir) if data_dir is not None else None
    app = build_app(driver=driver, store=store)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()
    log.info("dashboard running on :%s mode=%s", port, "embedded" if driver is not None else "external")

    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await runner.cleanup()
