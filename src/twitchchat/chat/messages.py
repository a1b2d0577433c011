"""
IRC message parsing, with the IRCv3 tags Twitch attaches to most messages.

    @badge-info=;badges=moderator/1;mod=1 :nick!nick@nick.tmi.twitch.tv PRIVMSG #channel :hello
"""

from __future__ import annotations

from dataclasses import dataclass, field


_TAG_ESCAPES = {
    ':': ';',
    's': ' ',
    'r': '\r',
    'n': '\n',
    '\\': '\\',
}


def _unescape_tag(value: str) -> str:
    if '\\' not in value:
        return value
    result: list[str] = []
    chars = iter(value)
    for char in chars:
        if char != '\\':
            result.append(char)
            continue
        escaped = next(chars, '')
        result.append(_TAG_ESCAPES.get(escaped, escaped))
    return ''.join(result)


def parse_badges(value: str) -> dict[str, str]:
    badges: dict[str, str] = {}
    for badge in filter(None, value.split(',')):
        name, _, version = badge.partition('/')
        badges[name] = version
    return badges


@dataclass
class IRCMessage:
    command: str
    params: list[str] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    prefix: str = ''

    @property
    def nick(self) -> str:
        # "nick!user@host" or just the server name
        return self.prefix.partition('!')[0]

    @property
    def channel(self) -> str:
        if self.params and self.params[0].startswith('#'):
            return self.params[0]
        return ''

    @property
    def trailing(self) -> str:
        return self.params[-1] if self.params else ''

    @property
    def badges(self) -> dict[str, str]:
        return parse_badges(self.tags.get("badges", ''))

    @classmethod
    def parse(cls, line: str) -> IRCMessage:
        line = line.rstrip("\r\n")
        if not line:
            raise ValueError("Empty IRC message")
        tags: dict[str, str] = {}
        prefix = ''
        if line.startswith('@'):
            raw_tags, _, line = line[1:].partition(' ')
            for tag in raw_tags.split(';'):
                key, _, value = tag.partition('=')
                tags[key] = _unescape_tag(value)
            line = line.lstrip(' ')
        if line.startswith(':'):
            prefix, _, line = line[1:].partition(' ')
            line = line.lstrip(' ')
        trailing: str | None = None
        if ' :' in line:
            line, _, trailing = line.partition(' :')
        elif line.startswith(':'):
            # no middle params at all
            line, trailing = '', line[1:]
        parts = line.split()
        if not parts:
            raise ValueError(f"IRC message without a command: {line!r}")
        command, params = parts[0].upper(), parts[1:]
        if trailing is not None:
            params.append(trailing)
        return cls(command=command, params=params, tags=tags, prefix=prefix)


def parse_lines(data: str) -> list[IRCMessage]:
    """
    Parse every message in a websocket frame. A single frame can carry several lines.
    """
    return [IRCMessage.parse(line) for line in data.split("\r\n") if line.strip()]
