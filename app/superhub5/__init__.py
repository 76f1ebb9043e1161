"""Virgin Media SuperHub 5 (Sagemcom F3896).

scrape.py does the talking to the hub, parse.py turns what it says into the canonical types in util.types.
Other modems get their own package with the same split and their own DocsisModem subclass.
"""
