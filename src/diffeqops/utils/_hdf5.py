# utils/_hdf5.py
"""Utilities for saving operators to and loading operators from HDF5."""

__all__ = [
    "hdf5_savehandle",
    "hdf5_loadhandle",
    "save_matrix",
    "load_matrix",
]

import os
import h5py
import warnings
import contextlib
import numpy as np
import scipy.sparse as sparse

from .. import errors


# File handles ================================================================
@contextlib.contextmanager
def hdf5_savehandle(savefile, overwrite: bool = False):
    """Get a handle to an HDF5 file (or group) to write to.

    Parameters
    ----------
    savefile : str or h5py File/Group handle
        * str : Name of the file to create.
        * h5py File/Group handle : part of an already open HDF5 file.
          The handle is not closed on exit.
    overwrite : bool
        If ``True``, overwrite the file if it already exists.
        If ``False`` (default), raise a ``FileExistsError`` instead.

    Examples
    --------
    >>> with hdf5_savehandle("operator.h5", overwrite=True) as hf:
    ...     hf.create_dataset("entries", data=A)
    """
    if isinstance(savefile, h5py.HLObject):
        yield savefile
        return

    if not savefile.endswith(".h5"):
        warnings.warn(
            "expected file with extension '.h5'",
            errors.DiffEqOpsWarning,
        )
    if os.path.isfile(savefile) and not overwrite:
        raise FileExistsError(f"{savefile} (overwrite=True to ignore)")
    with h5py.File(savefile, "w") as hf:
        yield hf


@contextlib.contextmanager
def hdf5_loadhandle(loadfile):
    """Get a handle to an HDF5 file (or group) to read from.

    Errors raised while reading are reported as
    :class:`diffeqops.errors.LoadfileFormatError`.

    Parameters
    ----------
    loadfile : str or h5py File/Group handle
        * str : Name of an existing file.
        * h5py File/Group handle : part of an already open HDF5 file.
          The handle is not closed on exit.
    """
    if isinstance(loadfile, h5py.HLObject):
        hf, close_when_done = loadfile, False
    else:
        if not os.path.isfile(loadfile):
            raise FileNotFoundError(loadfile)
        hf, close_when_done = h5py.File(loadfile, "r"), True

    try:
        yield hf
    except (errors.LoadfileFormatError, TypeError):
        raise
    except (KeyError, ValueError) as ex:
        raise errors.LoadfileFormatError(ex.args[0]) from ex
    finally:
        if close_when_done:
            hf.close()


# Matrices ====================================================================
def save_matrix(group: h5py.Group, name: str, A) -> None:
    """Store a dense or :mod:`scipy.sparse` matrix under ``group[name]``.

    Dense arrays become a dataset. Sparse matrices become a subgroup holding
    the COO triplets, with the original format recorded so that
    :func:`load_matrix` returns the same kind of object.

    Parameters
    ----------
    group : h5py.Group
        Open HDF5 group to write to.
    name : str
        Label of the new dataset or subgroup.
    A : (m, n) ndarray or scipy.sparse matrix / array
        Matrix to save.
    """
    if not sparse.issparse(A):
        if not isinstance(A, np.ndarray):
            raise TypeError("matrix must be a NumPy or scipy.sparse array")
        group.create_dataset(name, data=A)
        return

    coo = A.tocoo()
    subgroup = group.create_group(name)
    subgroup.create_dataset("data", data=coo.data)
    subgroup.create_dataset("row", data=coo.row)
    subgroup.create_dataset("col", data=coo.col)
    subgroup.attrs["shape"] = coo.shape
    subgroup.attrs["format"] = A.format
    subgroup.attrs["sparray"] = isinstance(A, sparse.sparray)


def load_matrix(group: h5py.Group, name: str):
    """Read a matrix stored with :func:`save_matrix`.

    Parameters
    ----------
    group : h5py.Group
        Open HDF5 group to read from.
    name : str
        Label of the dataset or subgroup.

    Returns
    -------
    A : (m, n) ndarray or scipy.sparse matrix / array
        Loaded matrix, in the format it was saved in.
    """
    item = group[name]
    if isinstance(item, h5py.Dataset):
        return item[...]

    shape = tuple(int(s) for s in item.attrs["shape"])
    triplets = (item["data"][:], (item["row"][:], item["col"][:]))
    if bool(item.attrs["sparray"]):
        coo = sparse.coo_array(triplets, shape=shape)
    else:
        coo = sparse.coo_matrix(triplets, shape=shape)
    return coo.asformat(str(item.attrs["format"]))
