"""
Template Service - WhatsApp message templates with {placeholder} variables
"""
import logging
import re
from typing import Optional, List, Dict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from condo_notify.database.models import WhatsAppTemplate, CondominiumTemplate

PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")


class TemplateNotFound(Exception):
    """Raised for a slug without a stored or built-in template"""

    def __init__(self, slug: str):
        super().__init__(f"Template não encontrado: {slug}")
        self.slug = slug


# Built-in bodies, used for seeding and "restore default"
DEFAULT_TEMPLATES: Dict[str, dict] = {
    "notification_occurrence": {
        "name": "Notificação de ocorrência",
        "description": "Enviada ao morador quando uma ocorrência é registrada",
        "variables": ["condominio", "nome", "tipo", "titulo", "link"],
        "content": (
            "🏢 *{condominio}*\n\n"
            "Olá, *{nome}*!\n\n"
            "Você recebeu uma *{tipo}*:\n"
            "📋 *{titulo}*\n\n"
            "Acesse o link abaixo para ver os detalhes e apresentar sua defesa:\n"
            "👉 {link}\n\n"
            "Este link é pessoal e intransferível."
        ),
    },
    "decision_archived": {
        "name": "Decisão: arquivada",
        "description": "Defesa aceita, ocorrência arquivada",
        "variables": ["condominio", "nome", "titulo", "justificativa", "link"],
        "content": (
            "✅ *DECISÃO: ARQUIVADA*\n\n"
            "🏢 *{condominio}*\n\n"
            "Olá, *{nome}*!\n\n"
            "Sua defesa referente à ocorrência \"{titulo}\" foi analisada.\n\n"
            "📋 *Decisão:* ARQUIVADA\n\n"
            "Sua defesa foi aceita e a ocorrência foi arquivada. Nenhuma penalidade será aplicada.\n\n"
            "💬 *Justificativa:*\n{justificativa}\n\n"
            "Acesse o sistema para mais detalhes:\n👉 {link}"
        ),
    },
    "decision_warning": {
        "name": "Decisão: advertência",
        "description": "Advertência formal aplicada após análise da defesa",
        "variables": ["condominio", "nome", "titulo", "justificativa", "link"],
        "content": (
            "⚠️ *DECISÃO: ADVERTÊNCIA APLICADA*\n\n"
            "🏢 *{condominio}*\n\n"
            "Olá, *{nome}*!\n\n"
            "Sua defesa referente à ocorrência \"{titulo}\" foi analisada.\n\n"
            "📋 *Decisão:* ADVERTÊNCIA APLICADA\n\n"
            "Após análise da sua defesa, foi decidido aplicar uma advertência formal.\n\n"
            "💬 *Justificativa:*\n{justificativa}\n\n"
            "Acesse o sistema para mais detalhes:\n👉 {link}"
        ),
    },
    "decision_fine": {
        "name": "Decisão: multa",
        "description": "Multa aplicada após análise da defesa",
        "variables": ["condominio", "nome", "titulo", "justificativa", "link"],
        "content": (
            "🚨 *DECISÃO: MULTA APLICADA*\n\n"
            "🏢 *{condominio}*\n\n"
            "Olá, *{nome}*!\n\n"
            "Sua defesa referente à ocorrência \"{titulo}\" foi analisada.\n\n"
            "📋 *Decisão:* MULTA APLICADA\n\n"
            "Após análise da sua defesa, foi decidido aplicar uma multa. Verifique os detalhes no sistema.\n\n"
            "💬 *Justificativa:*\n{justificativa}\n\n"
            "Acesse o sistema para mais detalhes:\n👉 {link}"
        ),
    },
    "notify_sindico_defense": {
        "name": "Nova defesa recebida",
        "description": "Aviso ao síndico quando um morador envia defesa",
        "variables": ["condominio", "nome_morador", "titulo", "tipo", "link"],
        "content": (
            "📋 *Nova Defesa Recebida*\n\n"
            "🏢 *{condominio}*\n\n"
            "O morador *{nome_morador}* enviou uma defesa para a ocorrência:\n\n"
            "📝 *{titulo}*\n"
            "Tipo: {tipo}\n\n"
            "Acesse o sistema para analisar:\n👉 {link}"
        ),
    },
    "trial_ending": {
        "name": "Fim do período de teste",
        "description": "Lembrete enviado ao síndico antes do fim do trial",
        "variables": ["condominio", "nome", "dias_restantes", "data_expiracao", "link_planos"],
        "content": (
            "⏰ *Seu Período de Teste está Acabando!*\n\n"
            "🏢 *{condominio}*\n\n"
            "Olá, *{nome}*!\n\n"
            "Seu período de teste gratuito termina em *{dias_restantes}*.\n\n"
            "📅 *Data de expiração:* {data_expiracao}\n\n"
            "Para continuar utilizando todos os recursos da plataforma, assine um de nossos planos:\n"
            "👉 {link_planos}\n\n"
            "Não perca acesso a:\n"
            "✅ Notificações automatizadas\n"
            "✅ Gestão de ocorrências\n"
            "✅ Controle de multas e advertências\n\n"
            "Qualquer dúvida, estamos à disposição!"
        ),
    },
    "trial_expired": {
        "name": "Período de teste expirado",
        "description": "Aviso de trial expirado",
        "variables": ["condominio", "nome", "data_expiracao", "link_planos"],
        "content": (
            "🔔 *Seu Período de Teste Expirou*\n\n"
            "🏢 *{condominio}*\n\n"
            "Olá, *{nome}*!\n\n"
            "Seu período de teste gratuito *expirou em {data_expiracao}*.\n\n"
            "Para continuar utilizando a plataforma, assine um de nossos planos:\n"
            "👉 {link_planos}\n\n"
            "Esperamos você de volta! 💙"
        ),
    },
    "payment_confirmed": {
        "name": "Pagamento confirmado",
        "description": "Confirmação de pagamento de fatura",
        "variables": ["condominio", "nome", "descricao_fatura", "metodo_pagamento", "valor", "data_pagamento"],
        "content": (
            "💰 *Pagamento Confirmado!*\n\n"
            "🏢 *{condominio}*\n\n"
            "Olá, *{nome}*!\n\n"
            "Um pagamento foi confirmado:\n"
            "📋 Fatura: {descricao_fatura}\n"
            "💳 Método: *{metodo_pagamento}*\n"
            "💵 Valor: *{valor}*\n"
            "📅 Data: {data_pagamento}\n\n"
            "✅ A fatura foi marcada como paga automaticamente."
        ),
    },
    "invoice_generated": {
        "name": "Fatura gerada",
        "description": "Nova fatura disponível para o condomínio",
        "variables": ["condominio", "nome", "numero_fatura", "periodo", "valor", "data_vencimento", "link"],
        "content": (
            "📄 *Nova Fatura Gerada*\n\n"
            "🏢 *{condominio}*\n\n"
            "Olá, *{nome}*!\n\n"
            "Uma nova fatura foi gerada para o seu condomínio:\n\n"
            "📋 *Detalhes:*\n"
            "• Número: {numero_fatura}\n"
            "• Período: {periodo}\n"
            "• Valor: *{valor}*\n"
            "• Vencimento: *{data_vencimento}*\n\n"
            "Acesse o sistema para visualizar e efetuar o pagamento:\n👉 {link}\n\n"
            "💡 Pague via PIX para confirmação instantânea!"
        ),
    },
    "package_arrival": {
        "name": "Chegada de encomenda",
        "description": "Aviso ao morador sobre encomenda na portaria",
        "variables": ["condominio", "nome", "bloco", "apartamento", "tipo_encomenda",
                      "codigo_rastreio", "porteiro", "numeropedido"],
        "content": (
            "📦 *Nova Encomenda!*\n\n"
            "🏢 *{condominio}*\n\n"
            "Olá, *{nome}*!\n\n"
            "Você tem uma encomenda aguardando na portaria.\n\n"
            "🏠 *Destino:* BLOCO {bloco}, APTO {apartamento}\n"
            "📋 *Tipo:* {tipo_encomenda}\n"
            "📍 *Rastreio:* {codigo_rastreio}\n"
            "🧑‍💼 *Recebido por:* {porteiro}\n"
            "🔑 *Código de retirada:* {numeropedido}\n\n"
            "Apresente este código na portaria para retirar sua encomenda.\n\n"
            "_Mensagem automática - NotificaCondo_"
        ),
    },
    "party_hall_reminder": {
        "name": "Lembrete de reserva",
        "description": "Lembrete de reserva do salão de festas",
        "variables": ["condominio", "nome", "espaco", "data", "horario_inicio", "horario_fim", "checklist"],
        "content": (
            "🎉 *LEMBRETE DE RESERVA*\n\n"
            "🏢 *{condominio}*\n\n"
            "Olá, *{nome}*!\n\n"
            "Sua reserva do *{espaco}* está confirmada para:\n"
            "📅 *Data:* {data}\n"
            "⏰ *Horário:* {horario_inicio} às {horario_fim}\n\n"
            "{checklist}\n\n"
            "📋 *Lembre-se:*\n"
            "• Compareça no horário para o checklist de entrada\n"
            "• Respeite as regras do espaço\n\n"
            "Boa festa! 🎊"
        ),
    },
    "party_hall_cancelled": {
        "name": "Reserva cancelada",
        "description": "Aviso de cancelamento de reserva",
        "variables": ["condominio", "nome", "espaco", "data", "horario_inicio", "horario_fim"],
        "content": (
            "❌ *RESERVA CANCELADA*\n\n"
            "🏢 *{condominio}*\n\n"
            "Olá, *{nome}*!\n\n"
            "Sua reserva do *{espaco}* foi cancelada:\n"
            "📅 *Data:* {data}\n"
            "⏰ *Horário:* {horario_inicio} às {horario_fim}\n\n"
            "Em caso de dúvidas, entre em contato com a administração.\n\n"
            "Atenciosamente,\nEquipe {condominio}"
        ),
    },
}


def render(content: str, variables: Optional[Dict[str, str]] = None) -> str:
    """
    Replace every {name} that exists in `variables`.

    Unknown placeholders are kept as literal text so partially filled
    previews stay readable. Never raises.
    """
    if not content:
        return content or ""
    values = variables or {}

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name in values and values[name] is not None:
            return str(values[name])
        return match.group(0)

    return PLACEHOLDER_RE.sub(_replace, content)


def find_placeholders(content: str) -> List[str]:
    """Placeholder names in order of first appearance"""
    seen = []
    for name in PLACEHOLDER_RE.findall(content or ""):
        if name not in seen:
            seen.append(name)
    return seen


def undeclared_placeholders(content: str, declared: List[str]) -> List[str]:
    """Placeholders used by `content` but missing from the declared variables"""
    return [name for name in find_placeholders(content) if name not in declared]


def reset_to_default(slug: str) -> str:
    """Built-in body for a slug"""
    default = DEFAULT_TEMPLATES.get(slug)
    if not default:
        raise TemplateNotFound(slug)
    return default["content"]


async def get_template(session: AsyncSession, slug: str) -> Optional[WhatsAppTemplate]:
    stmt = select(WhatsAppTemplate).where(WhatsAppTemplate.slug == slug)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_templates(session: AsyncSession) -> List[WhatsAppTemplate]:
    stmt = select(WhatsAppTemplate).order_by(WhatsAppTemplate.slug)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def resolve_template_content(
    session: AsyncSession,
    slug: str,
    condominium_id: Optional[int] = None,
) -> Optional[str]:
    """
    Content to send for a slug.

    Lookup order: active condominium override, active global template,
    built-in default. Returns None when the slug is unknown everywhere.
    """
    if condominium_id is not None:
        stmt = select(CondominiumTemplate).where(
            CondominiumTemplate.condominium_id == condominium_id,
            CondominiumTemplate.template_slug == slug,
            CondominiumTemplate.is_active == True,
        )
        result = await session.execute(stmt)
        custom = result.scalar_one_or_none()
        if custom and custom.content:
            logging.info(f"Using custom condominium template '{slug}' for condominium {condominium_id}")
            return custom.content

    template = await get_template(session, slug)
    if template and template.is_active and template.content:
        return template.content

    default = DEFAULT_TEMPLATES.get(slug)
    if default:
        logging.info(f"Template '{slug}' not stored or inactive, using built-in default")
        return default["content"]
    return None


async def update_template(
    session: AsyncSession,
    slug: str,
    content: str = None,
    name: str = None,
    description: str = None,
    is_active: bool = None,
) -> WhatsAppTemplate:
    """Update an existing template"""
    template = await get_template(session, slug)
    if not template:
        raise TemplateNotFound(slug)

    if content is not None:
        missing = undeclared_placeholders(content, template.variables or [])
        if missing:
            logging.warning(f"Template '{slug}' uses undeclared variables: {', '.join(missing)}")
        template.content = content
    if name is not None:
        template.name = name
    if description is not None:
        template.description = description
    if is_active is not None:
        template.is_active = is_active

    await session.commit()
    return template


async def restore_template(session: AsyncSession, slug: str) -> WhatsAppTemplate:
    """Overwrite a stored template with its built-in body"""
    content = reset_to_default(slug)
    template = await get_template(session, slug)
    if not template:
        default = DEFAULT_TEMPLATES[slug]
        template = WhatsAppTemplate(
            slug=slug,
            name=default["name"],
            description=default["description"],
            variables=list(default["variables"]),
            content=content,
            is_active=True,
        )
        session.add(template)
    else:
        template.content = content

    await session.commit()
    logging.info(f"Template '{slug}' restored to default")
    return template


async def seed_default_templates(session: AsyncSession) -> int:
    """Create missing built-in templates; existing rows are left untouched"""
    created = 0
    for slug, default in DEFAULT_TEMPLATES.items():
        if await get_template(session, slug):
            continue
        session.add(WhatsAppTemplate(
            slug=slug,
            name=default["name"],
            description=default["description"],
            variables=list(default["variables"]),
            content=default["content"],
            is_active=True,
        ))
        created += 1

    await session.commit()
    return created
