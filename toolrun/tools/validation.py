import jsonschema

from toolrun.tools.base import Tool, normalize_schema


class ToolValidator:
    @staticmethod
    def validate(tool: Tool, arguments: dict) -> tuple[bool, str | None]:
        # Missing required fields are the elicitation step's business; only
        # the shape of what was supplied is checked here.
        schema = normalize_schema(tool.parameters)
        schema.pop("required", None)
        supplied = {k: v for k, v in arguments.items() if v is not None}
        try:
            jsonschema.validate(instance=supplied, schema=schema)
            return True, None
        except jsonschema.ValidationError as e:
            return False, str(e.message)

    @staticmethod
    def missing_required(tool: Tool, arguments: dict) -> list[str]:
        required = normalize_schema(tool.parameters).get("required", [])
        return [name for name in required if arguments.get(name) in (None, "")]
