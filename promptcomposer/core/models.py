# promptcomposer/core/models.py
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Literal, Optional, Union

def new_block_id() -> str:
    return str(uuid.uuid4())

class NodeType(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"

class NodeState(str, Enum):
    """Tri-state selection of a tree node."""
    NONE = "none"
    ALL = "all"
    PARTIAL = "partial"

@dataclass
class TreeNode:
    """A file or directory in a listed project folder. `path` is the unique key."""
    name: str
    path: str
    type: NodeType = NodeType.FILE
    children: List['TreeNode'] = field(default_factory=list)

    @property
    def is_dir(self) -> bool:
        return self.type == NodeType.DIRECTORY

    # Allow hashing based on path for use in sets
    def __hash__(self):
        return hash(self.path)

    def __eq__(self, other):
        if not isinstance(other, TreeNode):
            return NotImplemented
        return self.path == other.path

@dataclass
class DirectoryListing:
    """Result of listing one project folder."""
    root_path: str
    root_name: str
    children: List[TreeNode] = field(default_factory=list)

    def as_root_node(self) -> TreeNode:
        return TreeNode(name=self.root_name, path=self.root_path, type=NodeType.DIRECTORY, children=self.children)

@dataclass
class FileEntry:
    """A selected file snapshot as embedded in a FilesBlock."""
    path: str
    content: str = ""
    language: str = "text"

@dataclass
class TemplateVariable:
    name: str
    default: str = ""

@dataclass
class GroupMembership:
    """Grouping flags shared by every block kind."""
    group_id: Optional[str] = None
    is_lead: bool = False
    locked: bool = False

# --- Blocks ---
# Every field has a default so blocks can be built with keywords only and
# validated back from persisted JSON; `kind` is the discriminator.

@dataclass
class TextBlock:
    content: str = ""
    id: str = field(default_factory=new_block_id)
    label: str = "Text Block"
    group: GroupMembership = field(default_factory=GroupMembership)
    kind: Literal["text"] = "text"

@dataclass
class TemplateBlock:
    content: str = ""
    variables: List[TemplateVariable] = field(default_factory=list)
    id: str = field(default_factory=new_block_id)
    label: str = "Template Block"
    group: GroupMembership = field(default_factory=GroupMembership)
    kind: Literal["template"] = "template"

@dataclass
class FilesBlock:
    files: List[FileEntry] = field(default_factory=list)
    project_ascii_map: str = ""
    include_project_map: bool = True
    id: str = field(default_factory=new_block_id)
    label: str = "File Block"
    group: GroupMembership = field(default_factory=GroupMembership)
    kind: Literal["files"] = "files"

@dataclass
class PromptResponseBlock:
    source_file: str = ""
    content: str = ""
    id: str = field(default_factory=new_block_id)
    label: str = "Prompt Response"
    group: GroupMembership = field(default_factory=GroupMembership)
    kind: Literal["prompt_response"] = "prompt_response"

Block = Union[TextBlock, TemplateBlock, FilesBlock, PromptResponseBlock]
BLOCK_TYPES = (TextBlock, TemplateBlock, FilesBlock, PromptResponseBlock)
