"""
Invitation and password-reset email templates (Spanish copy).

Invitations use two layouts: the corporate template for platform staff and
the tenant template for farm users. Password resets use the tenant one.
All interpolated values are HTML-escaped.
"""

from html import escape
from typing import Optional, Tuple

STAFF_ROLE_NAMES = {
    "sata_admin": "Administrador Global",
    "sata_tech": "Soporte Técnico",
}

TENANT_ROLE_NAMES = {
    "owner": "PROPIETARIO",
    "admin": "ADMINISTRADOR",
    "member": "MIEMBRO",
}

_MANUAL_LINK_BLOCK = """
            <div style="margin-top: 30px; padding-top: 20px; border-top: 1px dashed #e2e8f0; text-align: center;">
                <p style="font-size: 12px; color: #64748b; margin-bottom: 5px;">{label}</p>
                <div style="background-color: #f1f5f9; padding: 8px; border-radius: 4px; word-break: break-all; font-family: monospace; font-size: 11px; color: #475569;">
                    {link}
                </div>
            </div>"""


def render_auth_email(title: str, message_html: str, action_link: str, action_text: str) -> str:
    """Generic SATA action email. ``message_html`` must already be escaped."""
    link = escape(action_link, quote=True)
    manual = _MANUAL_LINK_BLOCK.format(
        label="¿El botón no funciona? Copia y pega el siguiente enlace en tu navegador:",
        link=link,
    )
    return f"""
    <div style="font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; color: #333; max-width: 500px; margin: 0 auto; border: 1px solid #e0e0e0; border-radius: 8px; overflow: hidden;">
        <div style="background-color: #0f172a; padding: 25px; text-align: center;">
            <h1 style="color: #22c55e; margin: 0; font-size: 28px; letter-spacing: 2px;">SATA</h1>
        </div>
        <div style="padding: 30px; background-color: #ffffff;">
            <h2 style="color: #0f172a; margin-top: 0; font-size: 20px;">{escape(title)}</h2>
            <p style="color: #64748b; line-height: 1.6;">{message_html}</p>
            <div style="text-align: center; margin: 30px 0;">
                <a href="{link}" target="_blank" style="background-color: #22c55e; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: bold; display: inline-block;">
                    {escape(action_text)}
                </a>
            </div>{manual}
            <p style="font-size: 12px; color: #94a3b8; margin-top: 20px; border-top: 1px solid #f1f5f9; padding-top: 10px;">
                Si no solicitaste este correo, puedes ignorarlo de manera segura.<br>
                SATA - Sistema de Alerta Temprana Agrícola
            </p>
        </div>
    </div>
    """.strip()


def render_staff_invitation(name: str, role: str, link: str) -> str:
    role_name = STAFF_ROLE_NAMES.get(role, "Soporte Técnico")
    safe_link = escape(link, quote=True)
    manual = _MANUAL_LINK_BLOCK.format(label="Enlace manual:", link=safe_link)
    return f"""
    <div style="font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; color: #333; max-width: 500px; margin: 0 auto; border: 1px solid #0f172a; border-radius: 8px; overflow: hidden;">
        <div style="background-color: #0f172a; padding: 30px; text-align: center;">
            <h1 style="color: #3b82f6; margin: 0; font-size: 32px; letter-spacing: 2px;">SATA <span style="color:white; font-size:16px;">CORP</span></h1>
        </div>
        <div style="padding: 40px; background-color: #ffffff;">
            <h2 style="color: #0f172a; margin-top: 0; font-size: 22px;">Bienvenido al Equipo</h2>
            <p style="color: #475569; line-height: 1.6; font-size: 16px;">
                Hola <strong>{escape(name)}</strong>,<br><br>
                Has sido seleccionado para unirte al equipo interno de SATA con el rol de:
            </p>
            <div style="background-color: #f1f5f9; padding: 15px; border-left: 4px solid #3b82f6; margin: 20px 0;">
                <strong style="color: #0f172a; font-size: 18px;">{role_name}</strong>
            </div>
            <p style="color: #64748b;">Haz clic a continuación para configurar tus credenciales de acceso seguro.</p>
            <div style="text-align: center; margin: 40px 0;">
                <a href="{safe_link}" target="_blank" style="background-color: #0f172a; color: white; padding: 14px 28px; text-decoration: none; border-radius: 6px; font-weight: bold; display: inline-block;">
                    Activar Cuenta Corporativa
                </a>
            </div>{manual}
        </div>
        <div style="background-color: #f8fafc; padding: 15px; text-align: center; font-size: 11px; color: #94a3b8;">
            SATA Internal Systems • Confidential
        </div>
    </div>
    """.strip()


def render_invitation(
    name: str,
    role: str,
    tenant_role: Optional[str],
    tenant_name: Optional[str],
    link: str,
) -> Tuple[str, str]:
    """
    Pick and render the invitation template.

    Returns:
        Tuple of (subject, html)
    """
    if role in STAFF_ROLE_NAMES:
        return "Bienvenido al Equipo - SATA CORP", render_staff_invitation(name, role, link)

    company = tenant_name or "SATA"
    role_name = TENANT_ROLE_NAMES.get(tenant_role or "member", "MIEMBRO")
    message = (
        f"Hola {escape(name)}, has sido invitado a formar parte de la empresa "
        f"<strong>{escape(company)}</strong> con el rol de <strong>{role_name}</strong>."
    )
    html = render_auth_email(
        f"Te han invitado a {company}",
        message,
        link,
        "Aceptar Invitación y Crear Contraseña",
    )
    return f"Invitación a Colaborar - {company}", html


def render_password_reset(link: str) -> Tuple[str, str]:
    """Returns (subject, html) for a password-reset link."""
    html = render_auth_email(
        "Restablecer Contraseña",
        "Hemos recibido una solicitud para restablecer tu contraseña en SATA. "
        "Haz clic en el botón de abajo para continuar.",
        link,
        "Restablecer mi Contraseña",
    )
    return "Recuperar Contraseña - SATA", html
