GENOTYPE_SEPARATOR = '*'


def correlate(typing, separator=GENOTYPE_SEPARATOR):
    """
    Correlation key of a genotype string: everything before the first
    separator, so ``HLA-A*01:01+HLA-A*02:01`` gives ``HLA-A``. A string
    without the separator is its own key.

    Building a request and matching its response must both go through here.
    """
    return typing.split(separator, 1)[0]
