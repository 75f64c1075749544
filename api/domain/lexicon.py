# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Built-in moderation lexicons.

Deployments replace these tables through MODERATION_LEXICON_PATH; the
defaults cover common English and Turkish abuse plus the vocabulary citizens
use when reporting municipal issues.
"""

from typing import Dict

# term -> severity weight
PROFANITY_TERMS: Dict[str, float] = {
    # English
    "fuck": 2.0,
    "fucking": 2.0,
    "fucker": 2.5,
    "motherfucker": 3.0,
    "shit": 1.0,
    "bullshit": 1.0,
    "asshole": 2.0,
    "bastard": 1.5,
    "bitch": 2.0,
    "cunt": 3.0,
    "dick": 1.5,
    "dickhead": 2.0,
    "prick": 1.5,
    "whore": 2.5,
    "slut": 2.5,
    "wanker": 2.0,
    "twat": 2.0,
    "retard": 2.5,
    "damn": 0.5,
    "crap": 0.5,
    "idiot": 1.0,
    "moron": 1.0,
    "imbecile": 1.0,
    # Turkish
    "amk": 2.5,
    "aq": 2.0,
    "siktir": 3.0,
    "orospu": 3.0,
    "piç": 2.5,
    "yavşak": 2.5,
    "gerizekalı": 1.5,
    "salak": 1.0,
    "aptal": 1.0,
    "şerefsiz": 2.0,
}

# token -> valence
POSITIVE_TERMS: Dict[str, float] = {
    "fine": 1.0,
    "good": 1.5,
    "great": 2.0,
    "thanks": 1.5,
    "thank": 1.5,
    "appreciate": 2.0,
    "quick": 1.0,
    "quickly": 1.0,
    "fixed": 1.5,
    "resolved": 1.5,
    "clean": 1.0,
    "safe": 1.0,
    "helpful": 1.5,
    "excellent": 2.5,
    "happy": 2.0,
    "nice": 1.5,
    "teşekkür": 1.5,
    "teşekkürler": 1.5,
    "güzel": 1.5,
    "iyi": 1.0,
}

NEGATIVE_TERMS: Dict[str, float] = {
    "broken": -1.5,
    "leak": -1.0,
    "leaking": -1.0,
    "dirty": -1.5,
    "dangerous": -2.0,
    "danger": -2.0,
    "unsafe": -2.0,
    "terrible": -2.5,
    "awful": -2.5,
    "horrible": -2.5,
    "bad": -1.5,
    "worse": -2.0,
    "worst": -2.5,
    "angry": -2.0,
    "disgusting": -2.5,
    "smell": -1.0,
    "stink": -1.5,
    "stinks": -1.5,
    "garbage": -1.0,
    "trash": -1.0,
    "noise": -1.0,
    "noisy": -1.0,
    "flooded": -1.5,
    "flooding": -1.5,
    "blocked": -1.0,
    "damaged": -1.5,
    "pothole": -1.0,
    "ignored": -2.0,
    "again": -0.5,
    "still": -0.5,
    "problem": -1.0,
    "complaint": -0.5,
    "kötü": -1.5,
    "bozuk": -1.5,
    "kirli": -1.5,
    "tehlikeli": -2.0,
    "rezalet": -2.5,
}

NEGATORS = frozenset({
    "not", "no", "never", "nothing", "none", "nobody", "neither", "nor",
    "isnt", "arent", "wasnt", "werent", "dont", "doesnt", "didnt",
    "cant", "cannot", "wont", "wouldnt", "shouldnt", "without", "değil",
})

INTENSIFIERS = frozenset({
    "very", "really", "extremely", "so", "too", "totally", "completely",
    "absolutely", "incredibly", "çok",
})

# character -> letter it commonly stands in for
LEET_SUBSTITUTIONS: Dict[str, str] = {
    "0": "o",
    "1": "i",
    "3": "e",
    "4": "a",
    "5": "s",
    "7": "t",
    "8": "b",
    "9": "g",
    "@": "a",
    "$": "s",
    "!": "i",
    "|": "l",
}
