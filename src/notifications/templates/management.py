"""Template management commands and handler."""

import structlog
from protean.exceptions import ValidationError
from protean.fields import Boolean, Dict, Identifier, List, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from notifications.domain import notifications
from notifications.templates.template import NotificationTemplate

logger = structlog.get_logger(__name__)


@notifications.command(part_of="NotificationTemplate")
class CreateTemplate:
    """``content`` holds the per-channel text, keyed by the aggregate's field names."""

    code: String(required=True, max_length=100)
    name: String(required=True, max_length=255)
    category: String(required=True, max_length=50)
    content: Dict(required=True)
    variables: List(content_type=String)
    default_data: Dict()
    enabled: Boolean(default=True)


@notifications.command(part_of="NotificationTemplate")
class UpdateTemplate:
    template_id: Identifier(required=True)
    changes: Dict(required=True)


@notifications.command(part_of="NotificationTemplate")
class DeleteTemplate:
    template_id: Identifier(required=True)


def find_template_by_code(code, enabled_only=False) -> NotificationTemplate | None:
    filters = {"code": code}
    if enabled_only:
        filters["enabled"] = True
    found = current_domain.repository_for(NotificationTemplate)._dao.query.filter(**filters).all().items
    return found[0] if found else None


@notifications.command_handler(part_of=NotificationTemplate)
class ManageTemplatesHandler:
    @handle(CreateTemplate)
    def create_template(self, command: CreateTemplate):
        if find_template_by_code(command.code) is not None:
            raise ValidationError({"code": [f"Template code already exists: {command.code}"]})

        template = NotificationTemplate.create(
            code=command.code,
            name=command.name,
            category=command.category,
            variables=command.variables,
            default_data=command.default_data,
            enabled=command.enabled,
            **command.content,
        )
        current_domain.repository_for(NotificationTemplate).add(template)
        logger.info("Template created", template_id=str(template.id), code=template.code)
        return str(template.id)

    @handle(UpdateTemplate)
    def update_template(self, command: UpdateTemplate):
        repo = current_domain.repository_for(NotificationTemplate)
        template = repo.get(command.template_id)
        changed = template.update(command.changes)
        if changed:
            repo.add(template)
            logger.info("Template updated", template_id=str(template.id), fields=changed)

    @handle(DeleteTemplate)
    def delete_template(self, command: DeleteTemplate):
        repo = current_domain.repository_for(NotificationTemplate)
        repo._dao.delete(repo.get(command.template_id))
        logger.info("Template deleted", template_id=str(command.template_id))
