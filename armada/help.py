"""
Armada help rendering.

HelpText turns a ToolNode into rich renderables:
- usage(): one usage line per calling convention
  ("usage: prog build [FLAGS...] TARGET", plus "prog ns TOOL [ARGUMENTS...]" for
  namespaces with sub-tools);
- help(): usage, name and description, flag groups, positional arguments and the
  sub-tool list;
- subtools(): the sub-tool list alone, optionally recursive and filtered by a
  search term matched against names and descriptions.

Palette keys (override any of them with a __styles__ mapping in __main__)
- usage-label, program-name, section, tool-name, description
- group-label, flag-name, argument-name, argument-description
- subtool-name, subtool-description
"""
import re

from rich.console import Group
from rich.table import Table
from rich.text import Text

from .faults import _palette, _texter
from .utils import *


class HelpText:
    """Help renderer for one tool node."""

    def __init__(self, node, /, *, loader=Unset, executable_name="armada", colorful=True, include_hidden=False):
        self.node = node
        self.loader = coalesce(loader)
        self.executable_name = executable_name
        self.include_hidden = include_hidden
        self._styler, self._text = _texter({"colorful": colorful}, _palette({
            "usage-label": "bold #00E6FF",
            "program-name": "bold #FF4D94",
            "section": "bold #FFFFFF",
            "tool-name": "bold #36C5F0",
            "description": "italic #A3A3A3",
            "group-label": "bold #FFFFFF",
            "flag-name": "bold #22C55E",
            "argument-name": "bold #FFD600",
            "argument-description": "#9CA3AF",
            "subtool-name": "bold #36C5F0",
            "subtool-description": "#9CA3AF",
        }))

    @property
    def command(self):
        return " ".join((self.executable_name, *self.node.full_name))

    def _has_subtools(self):
        return self.loader is not None and self.loader.has_subtools(self.node.full_name)

    def usage_lines(self):
        """Plain usage strings, one per calling convention."""
        lines = []
        if self.node.runnable or not self._has_subtools():
            words = [self.command]
            if self.node.flags:
                words.append("[FLAGS...]")
            for argument in self.node.required_args:
                words.append(argument.display_name)
            for argument in self.node.optional_args:
                words.append("[%s]" % argument.display_name)
            if (remaining := self.node.remaining_arg) is not None:
                words.append("[%s...]" % remaining.display_name)
            lines.append(" ".join(words))
        if self._has_subtools():
            lines.append("%s TOOL [ARGUMENTS...]" % self.command)
        return lines

    def usage(self):
        styler, text = self._styler, self._text
        usage = Text()
        for index, line in enumerate(self.usage_lines()):
            label = "usage" if index == 0 else "     "
            usage.append(text(label, styler("usage-label"))).append(": " if index == 0 else "  ")
            usage.append(text(line, styler("program-name"))).append("\n")
        usage.rstrip()
        return usage

    def subtools(self, *, recursive=False, search=Unset):
        """Return [(name words, description)] of the sub-tools, sorted by name."""
        if self.loader is None:
            return []
        nodes = self.loader.list_subtools(
            self.node.full_name,
            recursive=recursive,
            include_hidden=self.include_hidden,
        )
        depth = len(self.node.full_name)
        entries = [(" ".join(node.full_name[depth:]), node.desc) for node in nodes]
        if search:
            try:
                pattern = re.compile(search, re.IGNORECASE)
            except re.error:
                pattern = re.compile(re.escape(search), re.IGNORECASE)
            entries = [entry for entry in entries if pattern.search(entry[0]) or pattern.search(entry[1])]
        return entries

    def _subtools_table(self, entries):
        styler, text = self._styler, self._text
        table = Table.grid(padding=(0, 4))
        table.add_column(no_wrap=True)
        table.add_column()
        for name, desc in entries:
            table.add_row(text("  " + name, styler("subtool-name")), text(desc, styler("subtool-description")))
        return table

    def list(self, *, recursive=False, search=Unset):
        """The sub-tool list as a renderable."""
        styler, text = self._styler, self._text
        entries = self.subtools(recursive=recursive, search=search)
        title = "List of tools" if not self.node.full_name else "List of tools under %s" % self.node.display_name
        if search:
            title += " matching %r" % search
        renders = [text(title + ":", styler("section"))]
        if entries:
            renders.append(self._subtools_table(entries))
        else:
            renders.append(Text("  (none)"))
        return Group(*renders)

    def help(self, *, recursive=False, search=Unset):
        """Full help as a renderable."""
        styler, text = self._styler, self._text
        node = self.node
        renders = [self.usage(), Text()]

        name = Text("  ")
        name.append(text(node.display_name or self.executable_name, styler("tool-name")))
        if node.desc:
            name.append(" - ").append(text(node.desc, styler("description")))
        renders.extend((text("NAME", styler("section")), name))

        if node.long_desc:
            renders.extend((Text(), text("DESCRIPTION", styler("section"))))
            renders.extend(Text("  " + line) for line in node.long_desc)

        for group in node.flag_groups:
            if not len(group):
                continue
            table = Table.grid(padding=(0, 4))
            table.add_column(no_wrap=True)
            table.add_column()
            for flag in group:
                table.add_row(
                    text("  " + ", ".join(flag.canonical_syntax_strings), styler("flag-name")),
                    text(flag.desc, styler("argument-description")),
                )
            label = "FLAGS" if group.kind == "optional" and group.desc == "Flags" else group.desc.upper()
            renders.extend((Text(), text(label, styler("group-label")), table))

        if arguments := node.positional_args:
            table = Table.grid(padding=(0, 4))
            table.add_column(no_wrap=True)
            table.add_column()
            for argument in arguments:
                table.add_row(
                    text("  " + argument.display_name, styler("argument-name")),
                    text(argument.desc, styler("argument-description")),
                )
            renders.extend((Text(), text("POSITIONAL ARGUMENTS", styler("section")), table))

        if entries := self.subtools(recursive=recursive, search=search):
            renders.extend((Text(), text("TOOLS", styler("section")), self._subtools_table(entries)))

        return Group(*renders)


__all__ = (
    # Classes
    "HelpText",
)
