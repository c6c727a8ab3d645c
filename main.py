# main.py
import logging

from fastapi import FastAPI

from mailchimp_app.webhook import router as mailchimp_webhooks_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

app = FastAPI(title="Mailchimp API", version="1.1.0")

# Healthcheck
@app.get("/healthz")
def healthcheck():
    return {"ok": True}

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(mailchimp_webhooks_router)
