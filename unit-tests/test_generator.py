import random
import string
from unittest import TestCase, mock

from keeperlaps import generator
from keeperlaps.error import ConfigError, ErrorKind, PolicyError
from keeperlaps.generator import CHARACTER_CLASSES, EXCLUSION_SETS, PolicyConfig


def expected_satisfiable(policy):
    required = {k: v for k, v in policy.required_classes.items() if v > 0}
    if sum(required.values()) > policy.length:
        return False
    if any(not policy.allowed_characters(name) for name in required):
        return False
    if policy.length > sum(required.values()) and not policy.alphabet():
        return False
    return True


class TestPasswordGenerator(TestCase):
    def test_default_policy(self):
        policy = PolicyConfig()
        for _ in range(50):
            password = generator.generate(policy)
            self.assertEqual(len(password), 12)
            self.assertTrue(generator.meets_policy(password, policy))

    def test_length_equal_to_sum_of_minimums(self):
        policy = PolicyConfig(length=8, required_classes={'Uppercase': 2, 'Lowercase': 2, 'Number': 2, 'Symbol': 2})
        for _ in range(50):
            password = generator.generate(policy)
            counts = generator.classify(password)
            self.assertEqual(counts, {'Uppercase': 2, 'Lowercase': 2, 'Number': 2, 'Symbol': 2})

    def test_excluded_characters(self):
        policy = PolicyConfig(length=64, excluded_chars=frozenset('O0l1I'))
        for _ in range(50):
            password = generator.generate(policy)
            self.assertFalse(set(password) & set('O0l1I'))

    def test_exclusion_sets(self):
        policy = PolicyConfig(length=32, required_classes={'Uppercase': 2, 'Number': 2},
                              exclusion_sets=('Symbols', 'lowercase'))
        for _ in range(50):
            password = generator.generate(policy)
            self.assertTrue(all(ch in string.ascii_uppercase + string.digits for ch in password))

    def test_minimums_exceed_length(self):
        policy = PolicyConfig(length=3, required_classes={'Uppercase': 2, 'Number': 2})
        with self.assertRaises(PolicyError) as context:
            generator.generate(policy)
        self.assertEqual(context.exception.kind, ErrorKind.Unsatisfiable)

    def test_required_class_fully_excluded(self):
        policy = PolicyConfig(length=12, required_classes={'Number': 1}, excluded_chars=frozenset(string.digits))
        with self.assertRaises(PolicyError):
            generator.generate(policy)

        policy = PolicyConfig(length=12, required_classes={'Symbol': 1}, exclusion_sets=('symbols',))
        with self.assertRaises(PolicyError):
            generator.generate(policy)

    def test_empty_alphabet(self):
        policy = PolicyConfig(length=4, required_classes={}, exclusion_sets=tuple(EXCLUSION_SETS))
        with self.assertRaises(PolicyError):
            generator.generate(policy)

    def test_invalid_policy(self):
        with self.assertRaises(ConfigError):
            PolicyConfig(length=0)
        with self.assertRaises(ConfigError):
            PolicyConfig(required_classes={'Emoji': 1})
        with self.assertRaises(ConfigError):
            PolicyConfig(required_classes={'Number': -1})
        with self.assertRaises(ConfigError):
            PolicyConfig(exclusion_sets=('vowels',))

    def test_class_names_are_case_insensitive(self):
        policy = PolicyConfig(length=6, required_classes={'uppercase': 3, 'NUMBER': 3})
        self.assertEqual(dict(policy.required_classes), {'Uppercase': 3, 'Number': 3})

    def test_uses_secure_random_source(self):
        policy = PolicyConfig(length=6, required_classes={'Number': 6})
        with mock.patch('keeperlaps.generator.choice', return_value='7') as mock_choice, \
                mock.patch('keeperlaps.generator.shuffle') as mock_shuffle:
            self.assertEqual(generator.generate(policy), '777777')
            self.assertEqual(mock_choice.call_count, 6)
            mock_shuffle.assert_called_once()

    def test_random_policies(self):
        rnd = random.Random(20261019)
        class_names = list(CHARACTER_CLASSES)
        all_chars = ''.join(CHARACTER_CLASSES.values())
        for _ in range(300):
            length = rnd.randint(1, 24)
            required = {name: rnd.randint(0, 5) for name in rnd.sample(class_names, rnd.randint(0, 4))}
            excluded = frozenset(rnd.sample(all_chars, rnd.randint(0, 20)))
            sets = tuple(rnd.sample(list(EXCLUSION_SETS), rnd.randint(0, 2)))
            policy = PolicyConfig(length=length, required_classes=required, excluded_chars=excluded,
                                  exclusion_sets=sets)
            with self.subTest(policy=policy):
                if expected_satisfiable(policy):
                    password = generator.generate(policy)
                    self.assertEqual(len(password), length)
                    self.assertTrue(generator.meets_policy(password, policy))
                    self.assertFalse(set(password) & excluded)
                else:
                    with self.assertRaises(PolicyError):
                        generator.generate(policy)
