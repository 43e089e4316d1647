"""
Quick script to seed the default WhatsApp templates and show the active config
"""
import asyncio
from condo_notify.database.core import AsyncSessionLocal
from condo_notify.services.config_service import get_active_config
from condo_notify.services.template_service import seed_default_templates, list_templates


async def seed():
    async with AsyncSessionLocal() as session:
        created = await seed_default_templates(session)
        print(f"✅ {created} template(s) created")

        print("\n📋 Templates in database:")
        for t in await list_templates(session):
            status = "ativo" if t.is_active else "inativo"
            print(f"  - {t.slug} ({status}): {', '.join(t.variables or [])}")

        wa_config = await get_active_config(session)
        if wa_config:
            print(f"\n📱 Active provider: {wa_config.provider} ({wa_config.api_url})")
        else:
            print("\n❌ No active WhatsApp config. Use PUT /admin/whatsapp-config to create one.")


if __name__ == "__main__":
    asyncio.run(seed())
