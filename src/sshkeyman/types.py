"""Types for sshkeyman"""

import os
from typing import Union, NamedTuple, TypedDict

StrPath = Union[str, os.PathLike]

PUBLIC_SUFFIX = ".pub"

class CreateParams(TypedDict):
    """Values of the key creation form"""
    name: str
    type: str
    bits: int
    passphrase: str
    confirm_passphrase: str
    comment: str

class KeyEntry(NamedTuple):
    """A logical SSH key: a private file, a public file, or both. Files that
    don't follow the <name>/<name>.pub convention have neither half."""
    base_name: str
    has_private: bool
    has_public: bool
    placeholder: bool = False

    @property
    def is_pair(self) -> bool:
        """Both halves are present."""
        return self.has_private and self.has_public

    @property
    def kind(self) -> str:
        """One of pair, private, public or other."""
        if self.is_pair:
            return "pair"
        if self.has_private:
            return "private"
        if self.has_public:
            return "public"
        return "other"

    @property
    def file_name(self) -> str:
        """The literal file name this entry was built from."""
        if self.has_public and not self.has_private:
            return self.base_name + PUBLIC_SUFFIX
        return self.base_name

    @property
    def label(self) -> str:
        """Display text for the entry."""
        if self.is_pair:
            return f"{self.base_name} - {self.base_name}{PUBLIC_SUFFIX}"
        return self.file_name
