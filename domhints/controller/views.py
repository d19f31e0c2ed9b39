from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ToolModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	def to_payload(self) -> dict:
		return self.model_dump(by_alias=True, exclude_none=True)


# Action Input Models
class GetDomTreeAction(_ToolModel):
	tab_id: str
	force: bool = Field(default=False, description='Rebuild even when the cached tree is still fresh')


class GetFlattenDomAction(_ToolModel):
	tab_id: str
	include_attributes: list[str] | None = Field(default=None, description='Attributes to keep on each line, defaults to the built-in list')
	include_page_info: bool = Field(default=False, description='Prefix the text with viewport size and scroll position')


# Result Models
class DOMTreeResult(_ToolModel):
	tab_id: str
	new_nodes_count: int = 0
	total_nodes_count_change: int = 0
	removed_nodes_count: int = 0
	error: str | None = None


class FlattenDOMResult(_ToolModel):
	tab_id: str
	representation: str = ''
	error: str | None = None
