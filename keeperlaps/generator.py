#  _  __
# | |/ /___ ___ _ __  ___ _ _ ®
# | ' </ -_) -_) '_ \/ -_) '_|
# |_|\_\___\___| .__/\___|_|
#              |_|
#
# Keeper LAPS
# Copyright 2026 Keeper Security Inc.
# Contact: ops@keepersecurity.com
#

import abc
import logging
import string
import types
from dataclasses import dataclass, field
from secrets import choice
from typing import Dict, FrozenSet, List, Mapping, Tuple

from Cryptodome.Random.random import shuffle

from .error import ConfigError, ErrorKind, PolicyError

DEFAULT_PASSWORD_LENGTH = 12
PW_SPECIAL_CHARACTERS = '!@#$%()+;<>=?[]{}^.,'

CHARACTER_CLASSES = {
    'Uppercase': string.ascii_uppercase,
    'Lowercase': string.ascii_lowercase,
    'Number': string.digits,
    'Symbol': PW_SPECIAL_CHARACTERS,
}    # type: Dict[str, str]

EXCLUSION_SETS = {
    'uppercase': 'Uppercase',
    'lowercase': 'Lowercase',
    'numbers': 'Number',
    'symbols': 'Symbol',
}    # type: Dict[str, str]

DEFAULT_REQUIREMENTS = {'Uppercase': 1, 'Lowercase': 1, 'Number': 1, 'Symbol': 1}


def normalize_class_name(name):    # type: (str) -> str
    for class_name in CHARACTER_CLASSES:
        if class_name.lower() == str(name).strip().lower():
            return class_name
    raise ConfigError(f'Unknown password character class "{name}". '
                      f'Expected one of: {", ".join(CHARACTER_CLASSES)}')


def normalize_exclusion_set(name):    # type: (str) -> str
    key = str(name).strip().lower()
    if key not in EXCLUSION_SETS:
        raise ConfigError(f'Unknown exclusion set "{name}". Expected one of: {", ".join(EXCLUSION_SETS)}')
    return key


@dataclass(frozen=True)
class PolicyConfig:
    """Password generation constraints, loaded once at startup"""
    length: int = DEFAULT_PASSWORD_LENGTH
    required_classes: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_REQUIREMENTS))
    excluded_chars: FrozenSet[str] = frozenset()
    exclusion_sets: Tuple[str, ...] = ()

    def __post_init__(self):
        if isinstance(self.length, bool) or not isinstance(self.length, int) or self.length < 1:
            raise ConfigError(f'Password length must be a positive integer: {self.length!r}')
        requirements = {}
        for name, count in dict(self.required_classes).items():
            if isinstance(count, bool) or not isinstance(count, int) or count < 0:
                raise ConfigError(f'Minimum count for "{name}" must be a non-negative integer: {count!r}')
            requirements[normalize_class_name(name)] = count
        object.__setattr__(self, 'required_classes', types.MappingProxyType(requirements))
        object.__setattr__(self, 'excluded_chars', frozenset(self.excluded_chars))
        object.__setattr__(self, 'exclusion_sets', tuple(normalize_exclusion_set(x) for x in self.exclusion_sets))

    def allowed_characters(self, class_name):    # type: (str) -> str
        excluded_classes = {EXCLUSION_SETS[x] for x in self.exclusion_sets}
        if class_name in excluded_classes:
            return ''
        return ''.join(ch for ch in CHARACTER_CLASSES[class_name] if ch not in self.excluded_chars)

    def alphabet(self):    # type: () -> str
        return ''.join(self.allowed_characters(x) for x in CHARACTER_CLASSES)


class PasswordGenerator(abc.ABC):
    @abc.abstractmethod
    def generate(self):   # type: () -> str
        pass


class LapsPasswordGenerator(PasswordGenerator):
    """Generates passwords that honor a PolicyConfig.

    Every required character class contributes its minimum count, the remainder is
    drawn from the whole allowed alphabet and the result is shuffled.
    """
    def __init__(self, policy):    # type: (PolicyConfig) -> None
        self.policy = policy
        category_map = []    # type: List[Tuple[int, str]]
        sum_categories = 0
        for class_name, count in policy.required_classes.items():
            if count == 0:
                continue
            chars = policy.allowed_characters(class_name)
            if not chars:
                raise PolicyError(ErrorKind.Unsatisfiable,
                                  f'{class_name} characters are required but all of them are excluded')
            category_map.append((count, chars))
            sum_categories += count

        if sum_categories > policy.length:
            raise PolicyError(ErrorKind.Unsatisfiable,
                              f'Required character counts add up to {sum_categories}, '
                              f'more than the password length {policy.length}')

        extra_count = policy.length - sum_categories
        extra_chars = policy.alphabet()
        if extra_count > 0 and not extra_chars:
            raise PolicyError(ErrorKind.Unsatisfiable, 'Password character set is empty')
        category_map.append((extra_count, extra_chars))
        self.category_map = category_map

    def generate(self) -> str:
        password_list = []
        for count, chars in self.category_map:
            password_list.extend(choice(chars) for _ in range(count))
        shuffle(password_list)
        logging.debug('Generated a %d character password', len(password_list))
        return ''.join(password_list)


def generate(policy):    # type: (PolicyConfig) -> str
    return LapsPasswordGenerator(policy).generate()


def classify(password):    # type: (str) -> Dict[str, int]
    """Counts characters of each class in a password"""
    counts = {x: 0 for x in CHARACTER_CLASSES}
    for ch in password:
        for class_name, chars in CHARACTER_CLASSES.items():
            if ch in chars:
                counts[class_name] += 1
                break
    return counts


def meets_policy(password, policy):    # type: (str, PolicyConfig) -> bool
    if len(password) != policy.length:
        return False
    if not set(password).issubset(set(policy.alphabet())):
        return False
    counts = classify(password)
    return all(counts[name] >= count for name, count in policy.required_classes.items())
