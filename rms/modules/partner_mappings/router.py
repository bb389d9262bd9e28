from __future__ import annotations

from rms.modules.forms.router import form_router
from rms.utils.families import PARTNER_MAPPINGS

router = form_router(PARTNER_MAPPINGS, "/api/partner-mappings", ["partner-mappings"])
